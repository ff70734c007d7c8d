"""
=============================================================================
HTTP MESSAGES
=============================================================================

Translating bytes into requests and responses back into bytes.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   Incremental HTTP/1.1 parsing: request line, headers, body         │
    │   b"GET /users?id=1 HTTP/1.1\\r\\n..." → HTTPRequest(...)            │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE (response.py)                                              │
    │   HTTPResponse, ResponseBuilder, HTTP/1.1 serialization             │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ HTTP/2 SESSION (h2.py)                                              │
    │   One HTTPRequest per stream, built on the h2 state machine         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from http import HTTPStatus

from .request import HTTPParseError, HTTPRequest, RequestParser, parse_request, split_target
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error_response,
    format_http_date,
    internal_error,
    not_found,
)

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "split_target",
    "HTTPResponse",
    "ResponseBuilder",
    "error_response",
    "format_http_date",
    "not_found",
    "internal_error",
    "HTTPStatus",
]
