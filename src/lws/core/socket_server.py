"""
=============================================================================
SERVER HANDLE
=============================================================================

The live listening object a server factory returns. It owns the listening
sockets (through an asyncio.Server), the set of open Connections, and the
request handler the middleware stack was compiled into.

=============================================================================
LIFECYCLE
=============================================================================

    factory.create(options)
          │
          ▼
    ServerHandle ──listen(port, hostname)──► binding (a task on the loop)
                                                 │
                          bound ─────────────────┼───────────── OSError
                            │                                     │
                      "listening"                              "error"
                            │
                 accepts connections ──► "connection" (Connection)
                 dispatches requests ──► "request" (HTTPRequest)
                            │
                         close()
                            │
                        "close"

Everything is emitted synchronously from the event loop thread, so a
listener attached before listen() is called never misses an event.

=============================================================================
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence, Set, Tuple

from ..events import EventEmitter
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, internal_error, not_found
from .connection import Connection
from .protocol import ServerProtocol

logger = logging.getLogger(__name__)

# Milliseconds an idle keep-alive connection stays open
DEFAULT_KEEP_ALIVE_TIMEOUT = 5000

RequestHandler = Callable[[HTTPRequest], HTTPResponse]


class ServerHandle(EventEmitter):
    """
    A listening HTTP, HTTPS or HTTP/2 server.

    Attributes:
        max_connections: Refuse connections beyond this many open ones
            (None = unlimited).
        keep_alive_timeout: Idle milliseconds before a keep-alive connection
            is closed (0 = never).
        ssl_context: Set on HTTPS and HTTP/2 servers.
        alpn_protocols: Protocols offered through ALPN (HTTP/2 servers).
        request_handler: Called with each HTTPRequest; returns the response.
        connections: Currently open connections.
    """

    def __init__(
        self,
        request_handler: Optional[RequestHandler] = None,
        ssl_context=None,
        alpn_protocols: Sequence[str] = (),
    ):
        super().__init__()
        self.request_handler = request_handler
        self.ssl_context = ssl_context
        self.alpn_protocols = tuple(alpn_protocols)
        self.max_connections: Optional[int] = None
        self.keep_alive_timeout: int = DEFAULT_KEEP_ALIVE_TIMEOUT
        self.connections: Set[Connection] = set()
        self.listening = False

        self._server: Optional[asyncio.AbstractServer] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_secure(self) -> bool:
        return self.ssl_context is not None

    # =========================================================================
    # LISTEN / CLOSE
    # =========================================================================

    def listen(self, port: int, hostname: Optional[str] = None) -> asyncio.Task:
        """
        Start binding to (hostname, port). Must be called with a running loop.

        Returns immediately; "listening" or "error" is emitted once the bind
        has completed. The returned task can be awaited to wait for that.
        """
        loop = asyncio.get_running_loop()
        self._closed = False
        self._listen_task = loop.create_task(self._bind(port, hostname))
        return self._listen_task

    async def _bind(self, port: int, hostname: Optional[str]) -> None:
        loop = asyncio.get_running_loop()
        try:
            self._server = await loop.create_server(
                lambda: ServerProtocol(self),
                host=hostname,
                port=port,
                ssl=self.ssl_context,
                reuse_address=True,
            )
        except OSError as e:
            logger.error(f"Failed to bind to {hostname or '*'}:{port}: {e}")
            self.emit("error", e)
            return

        self.listening = True
        host, bound_port = self.address() or (hostname, port)
        logger.info(f"Server listening on {host}:{bound_port}")
        self.emit("listening")

    def address(self) -> Optional[Tuple[str, int]]:
        """(host, port) of the first bound socket, None when not listening."""
        if self._server is None or not self._server.sockets:
            return None
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    @property
    def port(self) -> Optional[int]:
        address = self.address()
        return address[1] if address else None

    def close(self) -> None:
        """
        Stop accepting, destroy every open connection, emit "close".

        Safe to call more than once; "close" is emitted once.
        """
        if self._closed:
            return
        self._closed = True

        if self._listen_task is not None and not self._listen_task.done():
            self._listen_task.cancel()
        if self._server is not None:
            self._server.close()

        for connection in list(self.connections):
            connection.destroy()

        self.listening = False
        logger.info("Server closed")
        self.emit("close")

    async def wait_closed(self) -> None:
        if self._server is not None:
            await self._server.wait_closed()

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Emit "request" and run the request handler.

        Called by the HTTP/1.1 and HTTP/2 sessions for every complete request.
        """
        self.emit("request", request)
        if self.request_handler is None:
            return not_found()
        try:
            return self.request_handler(request)
        except Exception as e:
            logger.exception(f"[{request.request_id}] Handler error: {e}")
            return internal_error()
