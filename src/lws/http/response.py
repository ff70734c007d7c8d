"""
=============================================================================
HTTP RESPONSE
=============================================================================

What a middleware handler returns, and how it is written back to the peer.

    Handler returns          to_bytes()              Connection.write()
    HTTPResponse    ─────►   serializes    ─────►    raw bytes
                             (HTTP/1.1)

The HTTP/2 session does not call to_bytes(); it sends status, headers()
and body as frames on the request's stream.

Use ResponseBuilder for a fluent way to construct responses:

    return (ResponseBuilder()
        .status(HTTPStatus.CREATED)
        .json({"id": 1})
        .build())

=============================================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Tuple, Union

from .. import __version__

SERVER_NAME = f"lws/{__version__}"


@dataclass
class HTTPResponse:
    """An HTTP response to be sent to the client."""

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {self.status.value} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header; returns self for chaining."""
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        for key, value in self.headers.items():
            if key.lower() == name.lower():
                return value
        return default

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def final_headers(self, server_name: str = SERVER_NAME) -> Dict[str, str]:
        """
        Headers as sent: Content-Length, Date and Server added when missing.
        """
        response_headers = dict(self.headers)
        present = {name.lower() for name in response_headers}
        if "content-length" not in present:
            response_headers["Content-Length"] = str(len(self.body))
        if "date" not in present:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "server" not in present:
            response_headers["Server"] = server_name
        return response_headers

    def to_bytes(self, server_name: str = SERVER_NAME, include_body: bool = True) -> bytes:
        """
        Serialize the response as an HTTP/1.1 message.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: application/json\\r\\n
            Content-Length: 27\\r\\n
            Date: Wed, 01 Jan 2026 ...\\r\\n
            Server: lws/1.0.0\\r\\n
            \\r\\n
            {"message": "Hello"}

        Args:
            include_body: False for answers to HEAD requests; Content-Length
                still describes the body that would have been sent.
        """
        lines = [self.status_line]
        for name, value in self.final_headers(server_name).items():
            lines.append(f"{name}: {value}")
        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + (self.body if include_body else b"")

    def h2_headers(self, server_name: str = SERVER_NAME) -> List[Tuple[str, str]]:
        """Header list for an HTTP/2 HEADERS frame (lowercase, no hop-by-hop)."""
        headers = [(":status", str(self.status.value))]
        for name, value in self.final_headers(server_name).items():
            name = name.lower()
            if name in HOP_BY_HOP_HEADERS:
                continue
            headers.append((name, value))
        return headers


# Connection-specific headers are forbidden in HTTP/2 (RFC 7540 8.1.2.2)
HOP_BY_HOP_HEADERS = frozenset({
    "connection", "keep-alive", "proxy-connection", "transfer-encoding", "upgrade",
})


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = ResponseBuilder().status(HTTPStatus.OK).text("hi").build()
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        return self.content_type(content_type).body(text)

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        body = json.dumps(data, indent=2 if pretty else None, default=str)
        return self.text(body, "application/json")

    def close_connection(self) -> "ResponseBuilder":
        return self.header("Connection", "close")

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=dict(self._headers), body=self._body)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always GMT.

        Wed, 01 Jan 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def error_response(status: HTTPStatus, message: str = "") -> HTTPResponse:
    """A JSON error body for `status`."""
    status = HTTPStatus(status)
    return ResponseBuilder().status(status).json({"error": message or status.phrase}).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    """404 Not Found, what an empty middleware stack answers."""
    return error_response(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500 Internal Server Error. Never carries exception details."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
