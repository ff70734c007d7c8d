"""
=============================================================================
MIDDLEWARE CONTRACT
=============================================================================

A middleware is an object with one operation:

    middleware(options) -> handler | [handler, ...] | None

It is asked for its handler once, when the server starts, with the final
options. Returning None opts out (e.g. a feature that is switched off);
returning a list contributes several handlers in that order.

A handler is the unit the request pipeline runs, Chain of Responsibility
style:

    def handler(request, next):
        # before: inspect or short-circuit
        response = next(request)
        # after: decorate the response
        return response

=============================================================================
WAYS TO SUPPLY MIDDLEWARE
=============================================================================

    stack=[Cors]                   class, instantiated with options
    stack=[make_cors]              factory callable, called with options
    stack=[Cors(options)]          ready-made object, used as is
    stack=["cors"]                 module, resolved as lws-cors, then cors
    stack=["./mw/cors.py"]         file path

A module is usable if it exports a class or factory (as `plugin`), or if
it defines a module-level middleware(options) function itself.

=============================================================================
"""

import logging
from typing import Any, Callable, List, Optional, Union

from ..events import EventEmitter
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

# What a handler receives to continue the chain
NextHandler = Callable[[HTTPRequest], HTTPResponse]

# A single pipeline step
Handler = Callable[[HTTPRequest, NextHandler], HTTPResponse]

MiddlewareResult = Union[Handler, List[Optional[Handler]], None]


class Middleware(EventEmitter):
    """
    Base class for middleware.

    Subclasses override middleware(). Being an EventEmitter, a middleware
    can report what it does with self.verbose(key, value); the stack
    forwards those events to the server's verbose stream.

        class Hello(Middleware):
            def middleware(self, options):
                def hello(request, next):
                    if request.path == "/hello":
                        return ResponseBuilder().text("hello").build()
                    return next(request)
                return hello
    """

    def __init__(self, options: Any = None):
        super().__init__()
        self.options = options

    def middleware(self, options: Any) -> MiddlewareResult:
        """Return this middleware's handler(s) for the final options."""
        return None

    @property
    def name(self) -> str:
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    Wraps a plain handler function as middleware.

        def add_header(request, next):
            response = next(request)
            response.set_header("X-Custom", "value")
            return response

        stack = [FunctionMiddleware(add_header)]
    """

    def __init__(self, func: Handler, name: Optional[str] = None):
        super().__init__()
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def middleware(self, options: Any) -> Handler:
        return self._func

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: Handler) -> FunctionMiddleware:
    """
    Decorator turning a handler function into a ready-to-use middleware.

        @function_middleware
        def timing(request, next):
            ...

        stack = [timing]
    """
    return FunctionMiddleware(func)


def is_middleware(obj: Any) -> bool:
    """True for a middleware object (not a class) with a callable middleware()."""
    return not isinstance(obj, type) and callable(getattr(obj, "middleware", None))
