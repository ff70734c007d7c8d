"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the parts of RFC 7230 a development server needs.

=============================================================================
INCREMENTAL PARSING
=============================================================================

Bytes arrive from the event loop in arbitrary chunks. A request may be
split over many chunks, and one chunk may hold several pipelined requests:

    data_received(b"GET / HTT")           feed() -> []
    data_received(b"P/1.1\\r\\n\\r\\nGET /a")  feed() -> [GET /]
    data_received(b" HTTP/1.1\\r\\n\\r\\n")    feed() -> [GET /a]

RequestParser.feed() buffers what it cannot use yet and returns every
request that is complete. parse() handles a single complete message and is
what feed() uses internally.

=============================================================================
PARSE ERRORS
=============================================================================

    400 Bad Request                  malformed syntax, ".." in the path
    405 Method Not Allowed           unknown method
    413 Payload Too Large            request exceeds max_request_size
    505 HTTP Version Not Supported   anything but HTTP/1.0 and HTTP/1.1

=============================================================================
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code the client should be answered with.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request, from either the HTTP/1.1 or the HTTP/2 codec.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         GET, POST, ...
        path:           Request path WITHOUT query string
        version:        "HTTP/1.0", "HTTP/1.1" or "HTTP/2"
        headers:        Header names are LOWERCASE
        query_params:   "?a=1&a=2" -> {"a": ["1", "2"]}
        body:           Raw body bytes
        client_address: (ip, port) of the peer
        request_id:     Per-server sequence number, assigned on dispatch
        connection:     The Connection the request arrived on

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: Tuple[str, int] = ("", 0)
    request_id: Optional[int] = None
    connection: Any = field(default=None, repr=False, compare=False)

    _body_json: Optional[Any] = field(default=None, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def json(self) -> Any:
        """
        Parse the request body as JSON (cached).

        Raises:
            HTTPParseError: If body is not valid JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after the response.

            HTTP/1.1   keep alive unless "Connection: close"
            HTTP/1.0   close unless "Connection: keep-alive"
            HTTP/2     streams are multiplexed; the connection stays open
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.0":
            return connection == "keep-alive"
        return connection != "close"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


def split_target(target: str) -> Tuple[str, Dict[str, List[str]]]:
    """
    Split a request target into a decoded path and its query parameters.

    Raises:
        HTTPParseError: If the path tries to climb out of the root.
    """
    parsed = urlparse(target)
    path = unquote(parsed.path) or "/"
    if ".." in path.split("/"):
        raise HTTPParseError("Invalid path: contains ..", status_code=400)
    return path, parse_qs(parsed.query, keep_blank_values=True)


class RequestParser:
    """
    Parses raw HTTP/1.1 request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        feed(chunk)
              │
              ▼
        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Append to buffer, size check        too large → 413           │
        │  2. Find header terminator (\\r\\n\\r\\n)    missing → wait for more │
        │  3. Parse request line + headers        invalid → 400/405/505     │
        │  4. Wait for Content-Length body bytes                            │
        │  5. Emit HTTPRequest, keep the remainder for the next request     │
        └───────────────────────────────────────────────────────────────────┘

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size
        self._buffer = b""

    @property
    def has_partial(self) -> bool:
        """True while an incomplete request is buffered."""
        return bool(self._buffer)

    def feed(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> List[HTTPRequest]:
        """
        Add received bytes and return every request completed by them.

        Raises:
            HTTPParseError: If the buffered data can never become a valid
                request. The buffer is discarded.
        """
        self._buffer += data
        requests = []
        try:
            while self._buffer:
                message_length = self._complete_length(self._buffer)
                if message_length is None:
                    break
                message, self._buffer = self._buffer[:message_length], self._buffer[message_length:]
                requests.append(self.parse(message, client_address))
        except HTTPParseError:
            self._buffer = b""
            raise
        return requests

    def _complete_length(self, data: bytes) -> Optional[int]:
        """Length of the first complete message in `data`, None if incomplete."""
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            if len(data) > self.max_request_size:
                raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)
            return None

        content_length = 0
        for line in data[:header_end].split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                try:
                    content_length = int(value.strip())
                except ValueError:
                    raise HTTPParseError("Invalid Content-Length header")
                if content_length < 0:
                    raise HTTPParseError("Invalid Content-Length header")

        total = header_end + 4 + content_length
        if total > self.max_request_size:
            raise HTTPParseError(f"Request too large: {total} bytes", status_code=413)
        if len(data) < total:
            return None
        return total

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse one complete HTTP request.

        Raises:
            HTTPParseError: If the request is malformed or incomplete.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, Dict[str, List[str]], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()
        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)
        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        path, query_params = split_target(target)
        return method, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Continuation lines are folded into the previous header and repeated
        headers are joined with ", ".
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue
            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse a single complete request with a throwaway parser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
