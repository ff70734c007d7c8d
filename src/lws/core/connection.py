"""
=============================================================================
CONNECTION
=============================================================================

One accepted client socket, seen through the asyncio transport that owns it.

The transport does the actual I/O. A Connection adds what the rest of the
server needs on top of it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BYTE ACCOUNTING                                                  │
    │     └── bytes_read / bytes_written, application bytes only           │
    │                                                                      │
    │  2. IDLE TIMEOUT                                                     │
    │     └── set_timeout(ms) arms a loop timer, re-armed on activity      │
    │     └── Expiry emits "timeout" and ends the connection               │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── OPEN → CLOSING → CLOSED                                      │
    │                                                                      │
    │  4. LIFECYCLE EVENTS                                                 │
    │     └── connect, data, drain, end, timeout, error, close             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
EVENTS
=============================================================================

    connect    transport ready (after the TLS handshake on secure servers)
    data       bytes received, args: (chunk,)
    drain      the write buffer emptied after writes were paused
    end        the peer closed its side (FIN received)
    timeout    no activity for the idle timeout; the connection is ended
    error      the transport failed, args: (exception,)
    close      the socket is gone, args: (had_error,)

=============================================================================
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Optional, Tuple

from ..events import EventEmitter

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    OPEN = "open"          # Accepted, reading and writing
    CLOSING = "closing"    # end() called, flushing the write buffer
    CLOSED = "closed"      # Transport released


class Connection(EventEmitter):
    """
    A client connection wrapping an asyncio transport.

    Attributes:
        transport: The asyncio transport (plain or TLS).
        address: Client's (ip, port) tuple.
        id: Sequence number assigned by the event aggregator, None until then.
        state: Current connection state.
        bytes_read: Application bytes received.
        bytes_written: Application bytes sent.
        requests_handled: Number of responses written.
    """

    def __init__(self, transport: asyncio.BaseTransport, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self.transport = transport
        self._loop = loop or asyncio.get_running_loop()

        peer = transport.get_extra_info("peername") or ("", 0)
        self.address: Tuple[str, int] = (peer[0], peer[1])

        self.id: Optional[int] = None
        self.state = ConnectionState.OPEN
        self.bytes_read = 0
        self.bytes_written = 0
        self.requests_handled = 0
        self.created_at = time.time()
        self.last_activity = self.created_at

        self.timeout: Optional[int] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def alpn_protocol(self) -> Optional[str]:
        """Protocol negotiated with ALPN, None on plain connections."""
        ssl_object = self.transport.get_extra_info("ssl_object")
        if ssl_object is None:
            return None
        return ssl_object.selected_alpn_protocol()

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        return self.transport.get_extra_info(name, default)

    # =========================================================================
    # I/O
    # =========================================================================

    def received(self, data: bytes) -> None:
        """Record bytes delivered by the transport and emit "data"."""
        self.bytes_read += len(data)
        self._touch()
        self.emit("data", data)

    def write(self, data: bytes) -> bool:
        """
        Queue bytes for sending.

        Returns:
            False if the connection is no longer writable.
        """
        if self.state != ConnectionState.OPEN or self.transport.is_closing():
            logger.debug(f"[{self.id}] Write on closed connection dropped ({len(data)} bytes)")
            return False
        self.transport.write(data)
        self.bytes_written += len(data)
        self._touch()
        return True

    def end(self, data: bytes = b"") -> None:
        """Write optional final bytes, then close once the buffer is flushed."""
        if data:
            self.write(data)
        if self.state != ConnectionState.OPEN:
            return
        self.state = ConnectionState.CLOSING
        self._cancel_timer()
        self.transport.close()

    def destroy(self) -> None:
        """Close immediately, discarding anything still buffered."""
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING
        self._cancel_timer()
        self.transport.abort()

    # =========================================================================
    # IDLE TIMEOUT
    # =========================================================================

    def set_timeout(self, timeout_ms: Optional[int]) -> None:
        """
        Close the connection after `timeout_ms` milliseconds of inactivity.

        0 or None disables the timer.
        """
        self.timeout = timeout_ms or None
        self._cancel_timer()
        if self.timeout and self.state == ConnectionState.OPEN:
            self._timer = self._loop.call_later(self.timeout / 1000, self._on_timeout)

    def _touch(self) -> None:
        self.last_activity = time.time()
        if self._timer is not None:
            self.set_timeout(self.timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        logger.debug(f"[{self.id}] Idle timeout after {self.timeout} ms")
        self.emit("timeout")
        self.end()

    # =========================================================================
    # TRANSPORT CALLBACKS (driven by ServerProtocol)
    # =========================================================================

    def drained(self) -> None:
        self.emit("drain")

    def peer_ended(self) -> None:
        self.emit("end")

    def lost(self, exc: Optional[BaseException]) -> None:
        """The transport is gone; emit "error" (if any) then "close"."""
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self._cancel_timer()
        if exc is not None:
            logger.debug(f"[{self.id}] Connection lost: {exc}")
            self.emit("error", exc)
        self.emit("close", exc is not None)
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __repr__(self) -> str:
        return f"<Connection id={self.id} {self.client_ip}:{self.client_port} {self.state.value}>"
