"""
=============================================================================
EVENT AGGREGATOR
=============================================================================

Turns server, connection and request lifecycle events into verbose events.

    ServerHandle event          verbose key              value
    ──────────────────          ───────────              ─────
    connection ───────────────► server.socket.new        socket properties
      Connection connect ─────► server.socket.connect    socket properties
      Connection data ────────► server.socket.data       socket properties
      Connection drain ───────► server.socket.drain      socket properties
      Connection timeout ─────► server.socket.timeout    socket properties
      Connection end ─────────► server.socket.end        socket properties
      Connection close ───────► server.socket.close      socket properties
      Connection error ───────► server.socket.error      {"err": exception}
    request ──────────────────► (assigns request_id)
    listening ────────────────► server.listening         ["http://host:port", ...]
    error ────────────────────► server.error             exception
    close ────────────────────► server.close             None

Socket properties are {"socketId": 3, "bytesRead": "1.6 kB",
"bytesWritten": "512 B"}. Byte counts are always human-readable strings.

The verbose events are emitted on the server's own verbose channel; the
orchestrator propagates the server, so one listener on the aggregator
sees them all.

=============================================================================
ID COUNTERS
=============================================================================

Each create_server_event_stream() call gets its own IdCounters: connection
ids and request ids are two independent counters starting at 1, owned by
that server's event stream. Ids are never reused: after three connections
have come and gone the fourth one is id 4. Two servers started from the
same aggregator number their connections independently.

=============================================================================
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

from . import util
from .events import EventEmitter

logger = logging.getLogger(__name__)


def socket_properties(connection: Any) -> Dict[str, Any]:
    """The verbose payload describing one connection."""
    return {
        "socketId": connection.id,
        "bytesRead": util.byte_size(connection.bytes_read),
        "bytesWritten": util.byte_size(connection.bytes_written),
    }


def listening_urls(is_secure: bool, hostname: Optional[str], port: int) -> List[str]:
    """
    URLs a listening server can be reached on.

    With a hostname, just that one; otherwise one per IPv4 interface.
    """
    scheme = "https" if is_secure else "http"
    if hostname:
        return [f"{scheme}://{hostname}:{port}"]
    return [f"{scheme}://{address}:{port}" for address in util.get_ip_list()]


class IdCounters:
    """Connection and request id sequences for one server."""

    def __init__(self):
        self._connection_ids = itertools.count(1)
        self._request_ids = itertools.count(1)

    def next_connection_id(self) -> int:
        return next(self._connection_ids)

    def next_request_id(self) -> int:
        return next(self._request_ids)


class EventAggregator(EventEmitter):
    """
    Wires server events into the verbose stream, numbering each server's
    connections and requests.
    """

    def create_server_event_stream(self, server: EventEmitter, options: Any) -> IdCounters:
        """
        Attach the listeners that turn `server` events into verbose events.

        Must run before the server starts listening, or early events are lost.

        Returns:
            The id counters used for this server.
        """
        counters = IdCounters()

        def write(key: str, value: Any = None) -> None:
            server.verbose(key, value)

        def socket_event(key: str, connection: Any):
            def listener(*args):
                write(key, socket_properties(connection))
            return listener

        def on_connection(connection):
            if connection.id is None:
                connection.id = counters.next_connection_id()
            write("server.socket.new", socket_properties(connection))
            for event in ("connect", "data", "drain", "timeout", "end", "close"):
                connection.on(event, socket_event(f"server.socket.{event}", connection))
            connection.on("error", lambda err: write("server.socket.error", {"err": err}))

        def on_request(request):
            if request.request_id is None:
                request.request_id = counters.next_request_id()

        def on_listening():
            port = getattr(server, "port", None) or options.port
            write("server.listening", listening_urls(getattr(server, "is_secure", False), options.hostname, port))

        server.on("connection", on_connection)
        server.on("request", on_request)
        server.on("listening", on_listening)
        server.on("error", lambda err: write("server.error", err))
        server.on("close", lambda: write("server.close"))
