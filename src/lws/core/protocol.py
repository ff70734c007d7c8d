"""
=============================================================================
ASYNCIO PROTOCOL
=============================================================================

The event loop calls a Protocol for everything that happens on a socket.
ServerProtocol turns those callbacks into Connection events and feeds the
bytes to the codec chosen for the connection:

    loop callback          ServerProtocol does
    ─────────────          ───────────────────────────────────────────────
    connection_made   ──►  enforce max_connections, create Connection,
                           emit server "connection", pick the session:
                             ALPN "h2"  → H2Session
                             otherwise → Http1Session
    data_received     ──►  Connection "data", session.data_received()
    eof_received      ──►  Connection "end"
    resume_writing    ──►  Connection "drain"
    connection_lost   ──►  Connection "error" (if any) + "close"

=============================================================================
HTTP/1.1 KEEP-ALIVE
=============================================================================

    request ──► response ──► keep alive?
                               │
                  yes ─────────┼───────── no
                   │                       │
      "Connection: keep-alive"     "Connection: close"
      arm idle timer               end the connection
      (keep_alive_timeout ms)

An idle timer that expires emits "timeout" on the connection and ends it.

=============================================================================
"""

import asyncio
import logging
import math
from typing import Optional

from ..http.h2 import H2Session
from ..http.request import HTTPParseError, HTTPRequest, RequestParser
from ..http.response import error_response
from .connection import Connection, ConnectionState

logger = logging.getLogger(__name__)


class Http1Session:
    """HTTP/1.0 and HTTP/1.1 handling for one connection."""

    def __init__(self, connection: Connection, server):
        self.connection = connection
        self.server = server
        self.parser = RequestParser()

    def start(self) -> None:
        pass

    def data_received(self, data: bytes) -> None:
        try:
            requests = self.parser.feed(data, self.connection.address)
        except HTTPParseError as e:
            logger.debug(f"[{self.connection.id}] Parse error: {e}")
            response = error_response(e.status_code, str(e))
            response.set_header("Connection", "close")
            self.connection.end(response.to_bytes())
            return

        for request in requests:
            if self.connection.state != ConnectionState.OPEN:
                break
            self._handle(request)

    def _handle(self, request: HTTPRequest) -> None:
        request.connection = self.connection
        response = self.server.dispatch(request)

        timeout = self.server.keep_alive_timeout
        keep_alive = request.is_keep_alive and response.get_header("Connection").lower() != "close"
        if keep_alive:
            response.set_header("Connection", "keep-alive")
            if timeout:
                response.set_header("Keep-Alive", f"timeout={math.ceil(timeout / 1000)}")
        else:
            response.set_header("Connection", "close")

        self.connection.write(response.to_bytes(include_body=request.method != "HEAD"))
        self.connection.requests_handled += 1

        if keep_alive:
            self.connection.set_timeout(timeout)
        else:
            self.connection.end()

    def close(self) -> None:
        pass


class ServerProtocol(asyncio.Protocol):
    """
    One instance per accepted socket, created by loop.create_server().

    Args:
        server: The ServerHandle that accepted the socket.
    """

    def __init__(self, server):
        self.server = server
        self.connection: Optional[Connection] = None
        self.session = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        server = self.server
        if server.max_connections is not None and len(server.connections) >= server.max_connections:
            peer = transport.get_extra_info("peername")
            logger.warning(f"Connection limit ({server.max_connections}) reached, refusing {peer}")
            transport.abort()
            return

        connection = Connection(transport)
        self.connection = connection
        server.connections.add(connection)

        # Listeners attached on "connection" see every later event
        server.emit("connection", connection)
        connection.emit("connect")

        if connection.alpn_protocol == "h2":
            self.session = H2Session(connection, server)
        else:
            self.session = Http1Session(connection, server)
        self.session.start()

    def data_received(self, data: bytes) -> None:
        if self.connection is None:
            return
        self.connection.received(data)
        self.session.data_received(data)

    def eof_received(self) -> bool:
        if self.connection is not None:
            self.connection.peer_ended()
        # False: let the transport close itself
        return False

    def resume_writing(self) -> None:
        if self.connection is not None:
            self.connection.drained()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self.connection is None:
            return
        self.server.connections.discard(self.connection)
        self.session.close()
        self.connection.lost(exc)
