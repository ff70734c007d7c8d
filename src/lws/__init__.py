"""
=============================================================================
LWS - Local Web Server Bootstrap
=============================================================================

Starts a configurable HTTP, HTTPS or HTTP/2 development server whose
behaviour comes entirely from a stack of middleware, and reports everything
that happens on it through one "verbose" event stream.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    lws/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m lws)
    ├── server.py            # Lws orchestrator
    ├── aggregator.py        # Lifecycle events → verbose events, id counters
    ├── factory.py           # Server factory chain (HTTP/HTTPS/HTTP2/custom)
    ├── config.py            # ServerOptions, config file, env, deep merge
    ├── resolver.py          # Plugin module lookup by name/prefix/path
    ├── tls.py               # SSL contexts, built-in certificate, PFX
    ├── events.py            # EventEmitter, VerboseEvent, propagate()
    ├── errors.py            # LwsError hierarchy
    ├── util.py              # byte sizes, interface list, memory stats
    ├── core/                # Transport
    │   ├── socket_server.py # ServerHandle (listening server)
    │   ├── connection.py    # Connection (one client socket)
    │   └── protocol.py      # asyncio Protocol, HTTP/1.1 session
    ├── http/                # HTTP messages
    │   ├── request.py       # Incremental request parsing
    │   ├── response.py      # Response building and serialization
    │   └── h2.py            # HTTP/2 session (h2)
    └── middleware/
        ├── base.py          # Middleware contract
        ├── stack.py         # Stack assembly from mixed specs
        └── pipeline.py      # Chain of Responsibility request pipeline

=============================================================================
QUICK START
=============================================================================

    import asyncio
    from lws import Lws, Middleware
    from lws.http import ResponseBuilder

    class Hello(Middleware):
        def middleware(self, options):
            def hello(request, next):
                return ResponseBuilder().text("Hello, World!").build()
            return hello

    async def main():
        lws = Lws()
        lws.on("verbose", lambda key, value: print(key, value))
        server = lws.listen(port=8000, stack=[Hello])
        await asyncio.Event().wait()

    asyncio.run(main())

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerOptions
from .errors import (
    ConfigConflict,
    InvalidServerModule,
    LwsError,
    MiddlewareNotFound,
    MiddlewareResolutionError,
    ModuleNotFound,
    ServerModuleNotFound,
)
from .events import EventEmitter, VerboseEvent
from .middleware import Middleware, MiddlewareStack
from .server import Lws

__all__ = [
    "Lws",
    "ServerOptions",
    "Middleware",
    "MiddlewareStack",
    "EventEmitter",
    "VerboseEvent",
    "LwsError",
    "ConfigConflict",
    "InvalidServerModule",
    "ModuleNotFound",
    "ServerModuleNotFound",
    "MiddlewareResolutionError",
    "MiddlewareNotFound",
    "__version__",
]
