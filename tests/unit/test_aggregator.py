"""
Unit tests for the event aggregator.

Servers and connections are stood in for by plain EventEmitters carrying the
attributes the aggregator reads, so every lifecycle event can be driven by
hand.
"""

from unittest import mock

import pytest

from lws.aggregator import EventAggregator, IdCounters, listening_urls, socket_properties
from lws.config import ServerOptions
from lws.events import EventEmitter
from lws.http import HTTPRequest


class FakeServer(EventEmitter):
    def __init__(self, port=None, is_secure=False):
        super().__init__()
        self.port = port
        self.is_secure = is_secure


class FakeConnection(EventEmitter):
    def __init__(self, bytes_read=0, bytes_written=0):
        super().__init__()
        self.id = None
        self.bytes_read = bytes_read
        self.bytes_written = bytes_written


@pytest.fixture
def wired(recorder):
    """An aggregator listening to a fake server, with a verbose recorder."""
    aggregator = EventAggregator()
    server = FakeServer(port=8000)
    counters = aggregator.create_server_event_stream(server, ServerOptions(hostname="127.0.0.1"))
    aggregator.propagate(server)
    return aggregator, server, recorder(aggregator), counters


class TestSocketProperties:
    def test_byte_strings(self):
        """Test that byte counts are rendered as human-readable strings."""
        connection = FakeConnection(bytes_read=1580, bytes_written=512)
        connection.id = 3

        assert socket_properties(connection) == {
            "socketId": 3,
            "bytesRead": "1.6 kB",
            "bytesWritten": "512 B",
        }


class TestListeningUrls:
    def test_hostname(self):
        """Test a single URL when a hostname is set."""
        assert listening_urls(False, "localhost", 8000) == ["http://localhost:8000"]

    def test_secure(self):
        """Test the https scheme for secure servers."""
        assert listening_urls(True, "127.0.0.1", 8443) == ["https://127.0.0.1:8443"]

    def test_every_interface(self):
        """Test one URL per IPv4 interface without a hostname."""
        with mock.patch("lws.util.get_ip_list", return_value=["127.0.0.1", "10.0.0.2"]):
            assert listening_urls(False, None, 8000) == [
                "http://127.0.0.1:8000",
                "http://10.0.0.2:8000",
            ]


class TestIdCounters:
    """Connection and request ids."""

    def test_ids_never_reused(self, wired):
        """Test that connection ids keep counting after sockets close."""
        aggregator, server, events, counters = wired
        ids = []
        for _ in range(3):
            connection = FakeConnection()
            server.emit("connection", connection)
            connection.emit("close", False)
            ids.append(connection.id)

        fourth = FakeConnection()
        server.emit("connection", fourth)

        assert ids == [1, 2, 3]
        assert fourth.id == 4

    def test_existing_id_kept(self, wired):
        """Test that a connection which already has an id keeps it."""
        aggregator, server, events, counters = wired
        connection = FakeConnection()
        connection.id = 99

        server.emit("connection", connection)

        assert connection.id == 99
        assert counters.next_connection_id() == 1

    def test_request_ids(self, wired):
        """Test sequential request ids."""
        aggregator, server, events, counters = wired
        requests = [HTTPRequest(method="GET", path="/") for _ in range(3)]
        for request in requests:
            server.emit("request", request)

        assert [r.request_id for r in requests] == [1, 2, 3]

    def test_servers_numbered_independently(self):
        """Test that each server on one aggregator numbers its own ids from 1."""
        aggregator = EventAggregator()
        first, second = FakeServer(port=8000), FakeServer(port=8001)
        aggregator.create_server_event_stream(first, ServerOptions(hostname="127.0.0.1"))
        aggregator.create_server_event_stream(second, ServerOptions(hostname="127.0.0.1"))

        a, b, c = FakeConnection(), FakeConnection(), FakeConnection()
        first.emit("connection", a)
        first.emit("connection", b)
        second.emit("connection", c)
        request = HTTPRequest(method="GET", path="/")
        second.emit("request", request)

        assert [a.id, b.id, c.id] == [1, 2, 1]
        assert request.request_id == 1

    def test_counters_start_at_one(self):
        """Test that fresh counters hand out 1 for both sequences."""
        counters = IdCounters()
        counters.next_connection_id()

        assert counters.next_connection_id() == 2
        assert counters.next_request_id() == 1


class TestServerEventStream:
    """Tests for server and socket events on the verbose stream."""

    def test_socket_lifecycle(self, wired):
        """Test every socket event in lifecycle order."""
        aggregator, server, events, counters = wired
        connection = FakeConnection()

        server.emit("connection", connection)
        connection.emit("connect")
        connection.bytes_read = 2000
        connection.emit("data", b"x" * 2000)
        connection.emit("drain")
        connection.emit("timeout")
        connection.emit("end")
        connection.bytes_written = 300
        connection.emit("close", False)

        assert events.keys() == [
            "server.socket.new",
            "server.socket.connect",
            "server.socket.data",
            "server.socket.drain",
            "server.socket.timeout",
            "server.socket.end",
            "server.socket.close",
        ]
        assert events.values("server.socket.new") == [
            {"socketId": 1, "bytesRead": "0 B", "bytesWritten": "0 B"}
        ]
        assert events.values("server.socket.close") == [
            {"socketId": 1, "bytesRead": "2.0 kB", "bytesWritten": "300 B"}
        ]

    def test_socket_error(self, wired):
        """Test that socket errors are wrapped in an err mapping."""
        aggregator, server, events, counters = wired
        connection = FakeConnection()
        server.emit("connection", connection)
        error = ConnectionResetError("reset")

        connection.emit("error", error)

        assert events.values("server.socket.error") == [{"err": error}]

    def test_listening(self, wired):
        """Test the listening URLs."""
        aggregator, server, events, counters = wired

        server.emit("listening")

        assert events.events == [("server.listening", ["http://127.0.0.1:8000"])]

    def test_listening_falls_back_to_option_port(self, recorder):
        """Test the configured port when the server reports none."""
        aggregator = EventAggregator()
        server = FakeServer(port=None, is_secure=True)
        aggregator.create_server_event_stream(server, ServerOptions(hostname="localhost", port=9443))
        events = recorder(server)

        server.emit("listening")

        assert events.values("server.listening") == [["https://localhost:9443"]]

    def test_listening_every_interface(self, recorder):
        """Test listening URLs for every interface."""
        aggregator = EventAggregator()
        server = FakeServer(port=8000)
        aggregator.create_server_event_stream(server, ServerOptions())
        events = recorder(server)

        with mock.patch("lws.util.get_ip_list", return_value=["127.0.0.1", "192.168.0.10"]):
            server.emit("listening")

        assert events.values("server.listening") == [
            ["http://127.0.0.1:8000", "http://192.168.0.10:8000"]
        ]

    def test_error_and_close(self, wired):
        """Test server error and close events."""
        aggregator, server, events, counters = wired
        error = OSError("address in use")

        server.emit("error", error)
        server.emit("close")

        assert events.events == [("server.error", error), ("server.close", None)]

    def test_events_reach_aggregator_once(self, wired):
        """Test that propagated events are not duplicated."""
        aggregator, server, events, counters = wired
        connection = FakeConnection()

        server.emit("connection", connection)

        assert events.keys().count("server.socket.new") == 1
