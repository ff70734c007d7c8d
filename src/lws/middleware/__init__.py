"""
Middleware: the contract (base), stack assembly from mixed specs (stack) and
the request pipeline the assembled handlers run in (pipeline).
"""

from .base import (
    FunctionMiddleware,
    Handler,
    Middleware,
    NextHandler,
    function_middleware,
    is_middleware,
)
from .pipeline import MiddlewarePipeline
from .stack import MiddlewareInstance, MiddlewareStack

__all__ = [
    "Middleware",
    "FunctionMiddleware",
    "function_middleware",
    "is_middleware",
    "Handler",
    "NextHandler",
    "MiddlewareInstance",
    "MiddlewareStack",
    "MiddlewarePipeline",
]
