"""
=============================================================================
EVENT EMITTER AND THE VERBOSE STREAM
=============================================================================

Servers, connections, factories and middleware stacks are all created
independently, deep inside the bootstrap. Rather than pass a logger to each of
them, every one of these objects is an EventEmitter, and anything interesting
it does becomes a "verbose" event:

    emitter.emit("verbose", "server.socket.new", {"socketId": 1, ...})
                             ───────┬──────────   ─────────┬─────────
                                   key                   value

propagate() is what joins the separate emitters into ONE stream:

    ┌────────────┐   propagate   ┌──────────────┐   propagate   ┌─────────┐
    │ Connection │ ────────────► │ ServerHandle │ ────────────► │   Lws   │ ──► listeners
    └────────────┘               └──────────────┘               └─────────┘
                                                                    ▲
    ┌────────────┐                                                  │
    │ Middleware │ ──► MiddlewareStack ─────────────────────────────┘
    └────────────┘

Forwarding is synchronous, so a listener at the end of the chain sees events
in exactly the order the innermost source emitted them. Listeners added late
simply miss earlier events; nothing is buffered.

=============================================================================
"""

from collections import defaultdict
from typing import Any, Callable, Dict, List, NamedTuple


VERBOSE = "verbose"

Listener = Callable[..., Any]


class VerboseEvent(NamedTuple):
    """One keyed diagnostic notification from the verbose stream."""

    key: str
    value: Any = None


class EventEmitter:
    """
    Minimal synchronous event emitter.

    Listeners run in registration order, inside emit(). An exception raised
    by a listener propagates to the code that called emit().
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Listener:
        """Register a listener; returns it so it can be removed later."""
        self._listeners[event].append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Register a listener that is removed after its first call."""
        def wrapper(*args):
            self.off(event, wrapper)
            return listener(*args)

        return self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listeners(self, event: str) -> List[Listener]:
        return list(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener of `event` with `args`.

        Returns:
            True if at least one listener was registered.
        """
        # Copy so listeners may add/remove listeners while we iterate
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            listener(*args)
        return bool(listeners)

    # =========================================================================
    # VERBOSE STREAM
    # =========================================================================

    def verbose(self, key: str, value: Any = None) -> None:
        """Emit one event on this object's verbose stream."""
        self.emit(VERBOSE, key, value)

    def propagate(self, source: "EventEmitter") -> Listener:
        """
        Re-emit every verbose event of `source` on this emitter, unchanged.

        The returned listener can be passed to source.off("verbose", ...) to
        stop forwarding.
        """
        def forward(key: str, value: Any = None):
            self.emit(VERBOSE, key, value)

        return source.on(VERBOSE, forward)

    def on_verbose(self, callback: Callable[[VerboseEvent], Any]) -> Listener:
        """Subscribe to the verbose stream with VerboseEvent records."""
        def listener(key: str, value: Any = None):
            callback(VerboseEvent(key, value))

        return self.on(VERBOSE, listener)
