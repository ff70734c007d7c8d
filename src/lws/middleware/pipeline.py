"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

Compiles the handlers of a middleware stack into the single request
callback a ServerHandle calls.

The pipeline wraps handlers around each other like layers of an onion:

    pipeline.use(cors, static, spa)

        ┌─────────────────────────────────────────────────────────┐
        │  cors                                                   │
        │  ┌───────────────────────────────────────────────────┐  │
        │  │  static                                           │  │
        │  │  ┌─────────────────────────────────────────────┐  │  │
        │  │  │  spa                                        │  │  │
        │  │  │  ┌─────────────────────────────────────┐    │  │  │
        │  │  │  │  TERMINAL: 404 Not Found            │    │  │  │
        │  │  │  └─────────────────────────────────────┘    │  │  │
        │  │  └─────────────────────────────────────────────┘  │  │
        │  └───────────────────────────────────────────────────┘  │
        └─────────────────────────────────────────────────────────┘

Request flows INWARD (first handler first), response flows OUTWARD.
A request no handler answers falls through to 404.

=============================================================================
ERRORS
=============================================================================

An exception escaping any handler is caught by callback(), emitted as
"error" (exception, request) on the pipeline and answered with 500.
The server stays up.

=============================================================================
"""

import logging
from typing import Callable, Iterator, List

from ..events import EventEmitter
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, internal_error, not_found
from .base import Handler, NextHandler

logger = logging.getLogger(__name__)


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


class MiddlewarePipeline(EventEmitter):
    """Chains handlers together in front of a terminal 404 handler."""

    def __init__(self):
        super().__init__()
        self._handlers: List[Handler] = []

    def add(self, handler: Handler) -> "MiddlewarePipeline":
        """Append a handler (first added = outermost). Returns self."""
        self._handlers.append(handler)
        logger.debug(f"Added middleware: {_handler_name(handler)}")
        return self

    def use(self, *handlers: Handler) -> "MiddlewarePipeline":
        for handler in handlers:
            self.add(handler)
        return self

    @staticmethod
    def terminal(request: HTTPRequest) -> HTTPResponse:
        return not_found()

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap `handler` with every handler in the pipeline.

        Given [H1, H2, H3]: H1 → H2 → H3 → handler. Wrapping happens in
        reverse so the first-added handler ends up outermost.
        """
        current = handler
        for middleware in reversed(self._handlers):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(self, middleware: Handler, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def callback(self) -> Callable[[HTTPRequest], HTTPResponse]:
        """
        The request callback for a ServerHandle.

        Never raises: handler exceptions become "error" events and 500s.
        """
        chain = self.wrap(self.terminal)

        def handle(request: HTTPRequest) -> HTTPResponse:
            try:
                response = chain(request)
                if not isinstance(response, HTTPResponse):
                    raise TypeError(f"Middleware returned {type(response).__name__}, expected HTTPResponse")
                return response
            except Exception as e:
                logger.exception(f"[{request.request_id}] Handler error: {e}")
                self.emit("error", e, request)
                return internal_error()

        return handle

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[Handler]:
        return iter(self._handlers)
