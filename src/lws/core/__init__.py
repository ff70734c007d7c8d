"""
Transport layer: the listening ServerHandle, per-socket Connections and the
asyncio protocol that connects them to the HTTP codecs.
"""

from .connection import Connection, ConnectionState
from .protocol import Http1Session, ServerProtocol
from .socket_server import DEFAULT_KEEP_ALIVE_TIMEOUT, ServerHandle

__all__ = [
    "Connection",
    "ConnectionState",
    "Http1Session",
    "ServerProtocol",
    "ServerHandle",
    "DEFAULT_KEEP_ALIVE_TIMEOUT",
]
