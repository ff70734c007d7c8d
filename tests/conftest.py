"""
pytest configuration and fixtures.
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lws.config import ServerOptions
from lws.events import EventEmitter


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def options() -> ServerOptions:
    """Options for a test server on a free loopback port, no config file."""
    return ServerOptions(hostname="127.0.0.1", port=0, config_file=None)


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch) -> Path:
    """Run in an empty directory with no LWS_* variables set."""
    for name in ("LWS_PORT", "LWS_HOSTNAME", "LWS_MODULE_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def plugin_dir(tmp_path) -> Path:
    """An empty directory to write plugin modules into."""
    directory = tmp_path / "plugins"
    directory.mkdir()
    return directory


class VerboseRecorder:
    """Collects (key, value) pairs from an emitter's verbose stream."""

    def __init__(self, emitter: EventEmitter):
        self.events: List[Tuple[str, object]] = []
        emitter.on("verbose", self.record)

    def record(self, key, value=None):
        self.events.append((key, value))

    def keys(self) -> List[str]:
        return [key for key, _ in self.events]

    def values(self, key: str) -> list:
        return [value for k, value in self.events if k == key]


@pytest.fixture
def recorder():
    return VerboseRecorder


async def http_exchange(port: int, raw: bytes, host: str = "127.0.0.1") -> bytes:
    """Send raw bytes to a server and read until it closes the connection."""
    reader, writer = await asyncio.open_connection(host, port)
    writer.write(raw)
    await writer.drain()
    data = await asyncio.wait_for(reader.read(), timeout=5)
    writer.close()
    return data


async def wait_for(predicate, timeout: float = 5.0) -> None:
    """Yield to the loop until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def parse_status(response: bytes) -> int:
    return int(response.split(b" ", 2)[1])


def response_body(response: bytes) -> bytes:
    return response.split(b"\r\n\r\n", 1)[1]


def header_map(response: bytes) -> Dict[str, str]:
    head = response.split(b"\r\n\r\n", 1)[0].decode()
    headers = {}
    for line in head.split("\r\n")[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return headers
