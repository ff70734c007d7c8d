"""
Unit tests for the event emitter and verbose propagation.
"""

import pytest

from lws.events import EventEmitter, VerboseEvent


class TestEventEmitter:
    """Tests for on/once/off/emit."""

    def test_listeners_run_in_order(self):
        """Test that listeners run in registration order."""
        emitter = EventEmitter()
        calls = []
        emitter.on("ping", lambda x: calls.append(("a", x)))
        emitter.on("ping", lambda x: calls.append(("b", x)))

        assert emitter.emit("ping", 1) is True
        assert calls == [("a", 1), ("b", 1)]

    def test_emit_without_listeners(self):
        """Test emitting an event nobody listens to."""
        assert EventEmitter().emit("nothing") is False

    def test_once(self):
        """Test a listener that runs only once."""
        emitter = EventEmitter()
        calls = []
        emitter.once("ping", lambda: calls.append(1))

        emitter.emit("ping")
        emitter.emit("ping")

        assert calls == [1]
        assert emitter.listeners("ping") == []

    def test_off(self):
        """Test removing a listener."""
        emitter = EventEmitter()
        calls = []
        listener = emitter.on("ping", lambda: calls.append(1))
        emitter.off("ping", listener)
        emitter.off("ping", listener)  # unknown listener is ignored

        emitter.emit("ping")
        assert calls == []

    def test_listener_error_propagates(self):
        """Test that listener errors reach the emitter."""
        emitter = EventEmitter()

        def broken():
            raise RuntimeError("boom")

        emitter.on("ping", broken)
        with pytest.raises(RuntimeError):
            emitter.emit("ping")


class TestVerbose:
    """Tests for the verbose stream."""

    def test_verbose_emits_key_and_value(self):
        """Test the verbose event payload."""
        emitter = EventEmitter()
        seen = []
        emitter.on("verbose", lambda key, value: seen.append((key, value)))

        emitter.verbose("server.close")
        emitter.verbose("app.error", "err")

        assert seen == [("server.close", None), ("app.error", "err")]

    def test_propagate_forwards_unchanged(self):
        """Test forwarding verbose events unchanged."""
        source, target = EventEmitter(), EventEmitter()
        seen = []
        target.on("verbose", lambda key, value: seen.append((key, value)))

        target.propagate(source)
        value = {"socketId": 1}
        source.verbose("server.socket.new", value)

        assert seen == [("server.socket.new", value)]
        assert seen[0][1] is value

    def test_nested_propagation_delivers_once(self):
        """Test that nested propagation delivers each event once."""
        inner, middle, outer = EventEmitter(), EventEmitter(), EventEmitter()
        middle.propagate(inner)
        outer.propagate(middle)
        seen = []
        outer.on("verbose", lambda key, value: seen.append(key))

        inner.verbose("a")
        middle.verbose("b")

        assert seen == ["a", "b"]

    def test_propagation_preserves_order(self):
        """Test event order through propagation."""
        first, second, target = EventEmitter(), EventEmitter(), EventEmitter()
        target.propagate(first)
        target.propagate(second)
        seen = []
        target.on("verbose", lambda key, value: seen.append(key))

        first.verbose("1")
        second.verbose("2")
        first.verbose("3")

        assert seen == ["1", "2", "3"]

    def test_stop_propagation(self):
        """Test detaching a propagated emitter."""
        source, target = EventEmitter(), EventEmitter()
        seen = []
        target.on("verbose", lambda key, value: seen.append(key))

        forward = target.propagate(source)
        source.off("verbose", forward)
        source.verbose("lost")

        assert seen == []

    def test_on_verbose_records(self):
        """Test the on_verbose helper."""
        emitter = EventEmitter()
        seen = []
        emitter.on_verbose(seen.append)

        emitter.verbose("server.listening", ["http://127.0.0.1:8000"])

        assert seen == [VerboseEvent("server.listening", ["http://127.0.0.1:8000"])]
        assert seen[0].key == "server.listening"
