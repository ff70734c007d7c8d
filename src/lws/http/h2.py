"""
=============================================================================
HTTP/2 SESSION
=============================================================================

Serves HTTP/2 on a connection that negotiated "h2" through ALPN.

The h2 library is a pure state machine: bytes go in through receive_data(),
events come out, and frames to send accumulate until data_to_send() is
called. This session connects that machine to a Connection and to the
server's request dispatcher:

    Connection bytes ──► H2Connection.receive_data() ──► events
                                                            │
         RequestReceived   headers of a new stream ─────────┤
         DataReceived      request body chunk ──────────────┤
         StreamEnded       request complete ──► dispatch ──►│ response
         WindowUpdated     peer can take more body bytes ───┤
         StreamReset       peer gave up on a stream ────────┤
         ConnectionTerminated  GOAWAY ──► end connection    │
                                                            ▼
    Connection.write() ◄── H2Connection.data_to_send() ◄── send_headers/send_data

=============================================================================
FLOW CONTROL
=============================================================================

A response body may be larger than the peer's flow-control window. Whatever
does not fit is parked per stream and sent when a WindowUpdated event says
the window opened again.

=============================================================================
"""

import logging
from typing import Dict

from h2.config import H2Configuration
from h2.connection import H2Connection
from h2.events import (
    ConnectionTerminated,
    DataReceived,
    RequestReceived,
    StreamEnded,
    StreamReset,
    WindowUpdated,
)
from h2.exceptions import ProtocolError

from .request import HTTPParseError, HTTPRequest, split_target
from .response import HTTPResponse, error_response

logger = logging.getLogger(__name__)


class H2Session:
    """
    HTTP/2 protocol handler for one connection.

    Args:
        connection: The Connection the session reads from and writes to.
        server: Anything with dispatch(request) -> HTTPResponse.
    """

    def __init__(self, connection, server):
        self.connection = connection
        self.server = server
        self.conn = H2Connection(config=H2Configuration(client_side=False, header_encoding="utf-8"))
        self._requests: Dict[int, HTTPRequest] = {}
        self._bodies: Dict[int, bytearray] = {}
        self._pending: Dict[int, bytes] = {}

    def start(self) -> None:
        """Send the server connection preface (SETTINGS)."""
        self.conn.initiate_connection()
        self._flush()

    def data_received(self, data: bytes) -> None:
        try:
            events = self.conn.receive_data(data)
        except ProtocolError as e:
            logger.debug(f"[{self.connection.id}] HTTP/2 protocol error: {e}")
            self._flush()
            self.connection.end()
            return

        for event in events:
            if isinstance(event, RequestReceived):
                self._request_received(event)
            elif isinstance(event, DataReceived):
                self._bodies.setdefault(event.stream_id, bytearray()).extend(event.data)
                self.conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
            elif isinstance(event, StreamEnded):
                self._stream_ended(event.stream_id)
            elif isinstance(event, WindowUpdated):
                self._window_updated(event.stream_id)
            elif isinstance(event, StreamReset):
                self._discard(event.stream_id)
            elif isinstance(event, ConnectionTerminated):
                logger.debug(f"[{self.connection.id}] GOAWAY received ({event.error_code})")
                self._flush()
                self.connection.end()
                return

        self._flush()

    def close(self) -> None:
        """Connection is going away; drop parked bodies."""
        self._requests.clear()
        self._bodies.clear()
        self._pending.clear()

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def _request_received(self, event: RequestReceived) -> None:
        headers = {}
        pseudo = {}
        for name, value in event.headers:
            if name.startswith(":"):
                pseudo[name] = value
            elif name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        if ":authority" in pseudo and "host" not in headers:
            headers["host"] = pseudo[":authority"]

        try:
            path, query_params = split_target(pseudo.get(":path", "/"))
        except HTTPParseError as e:
            self._respond(event.stream_id, error_response(e.status_code, str(e)), head=False)
            return

        self._requests[event.stream_id] = HTTPRequest(
            method=pseudo.get(":method", "GET"),
            path=path,
            version="HTTP/2",
            headers=headers,
            query_params=query_params,
            client_address=self.connection.address,
            connection=self.connection,
        )

    def _stream_ended(self, stream_id: int) -> None:
        request = self._requests.pop(stream_id, None)
        if request is None:
            return
        request.body = bytes(self._bodies.pop(stream_id, b""))
        response = self.server.dispatch(request)
        self._respond(stream_id, response, head=request.method == "HEAD")
        self.connection.requests_handled += 1

    # =========================================================================
    # RESPONSES
    # =========================================================================

    def _respond(self, stream_id: int, response: HTTPResponse, head: bool) -> None:
        body = b"" if head else response.body
        self.conn.send_headers(stream_id, response.h2_headers(), end_stream=not body)
        if body:
            self._pending[stream_id] = body
            self._send_pending(stream_id)

    def _send_pending(self, stream_id: int) -> None:
        """Send as much of a parked body as the flow-control window allows."""
        body = self._pending.get(stream_id)
        if body is None:
            return

        while body:
            window = self.conn.local_flow_control_window(stream_id)
            size = min(window, len(body), self.conn.max_outbound_frame_size)
            if size <= 0:
                break
            self.conn.send_data(stream_id, body[:size])
            body = body[size:]

        if body:
            self._pending[stream_id] = body
        else:
            del self._pending[stream_id]
            self.conn.end_stream(stream_id)

    def _window_updated(self, stream_id: int) -> None:
        # stream 0 = the connection window, which can unblock every stream
        stream_ids = list(self._pending) if stream_id == 0 else [stream_id]
        for sid in stream_ids:
            self._send_pending(sid)

    def _discard(self, stream_id: int) -> None:
        self._requests.pop(stream_id, None)
        self._bodies.pop(stream_id, None)
        self._pending.pop(stream_id, None)

    def _flush(self) -> None:
        data = self.conn.data_to_send()
        if data:
            self.connection.write(data)
