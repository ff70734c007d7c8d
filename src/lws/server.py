"""
=============================================================================
LWS - SERVER ORCHESTRATOR
=============================================================================

Lws ties the pieces together: options, factory chain, event aggregator,
middleware stack and request pipeline. One call starts a server:

    async def main():
        lws = Lws()
        lws.on_verbose(print)
        server = lws.listen(port=8000, stack=["static", Cors])
        ...

=============================================================================
STARTUP SEQUENCE
=============================================================================

    listen(options)
      │
      ├── 1. merge options      defaults < env < config file < explicit
      ├── 2. create server      factory chain (HTTP / HTTPS / HTTP2 / custom)
      ├── 3. tune server        max_connections, keep_alive_timeout
      ├── 4. event stream       server events → verbose events
      ├── 5. propagate server   server verbose → Lws verbose
      ├── 6. build stack        specs → MiddlewareStack, propagate it
      ├── 7. pipeline           handlers → one request callback
      ├── 8. listen             (port, hostname), bind completes on the loop
      └── 9. memory stats       process.memoryUsage every 60 s

Steps 2 and 6 raise on invalid configuration. Both run before step 8, so a
failed startup never leaves a server listening.

The event stream is wired (4, 5) before listen (8), so no lifecycle event
of the new server is missed.

=============================================================================
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from .aggregator import EventAggregator
from .config import ServerOptions, deep_merge, load_options, normalise_names
from .core.socket_server import ServerHandle
from .factory import select_server_factory
from .middleware.pipeline import MiddlewarePipeline
from .middleware.stack import MiddlewareStack
from .resolver import ModuleResolver
from .util import byte_size, memory_usage

logger = logging.getLogger(__name__)

# Seconds between process.memoryUsage events
MEMORY_USAGE_INTERVAL = 60.0


class Lws(EventAggregator):
    """
    Creates listening servers and aggregates their events into one verbose
    stream.

    Subscribe with lws.on("verbose", fn(key, value)) or
    lws.on_verbose(fn(VerboseEvent)).
    """

    memory_usage_interval = MEMORY_USAGE_INTERVAL

    def __init__(self):
        super().__init__()
        self.options: Optional[ServerOptions] = None
        self.stack: Optional[MiddlewareStack] = None

    def resolve_options(
        self,
        options: Union[ServerOptions, Mapping[str, Any], None] = None,
        **overrides: Any,
    ) -> ServerOptions:
        """
        Final ServerOptions for a listen() call.

        A ServerOptions instance is taken as already resolved (overrides still
        apply); a mapping and/or keyword options go through the full merge.
        """
        if isinstance(options, ServerOptions):
            if overrides:
                options = ServerOptions.from_dict(deep_merge(options.to_dict(), normalise_names(overrides)))
            options.validate()
            return options
        return load_options(deep_merge(normalise_names(options or {}), normalise_names(overrides)))

    def listen(
        self,
        options: Union[ServerOptions, Mapping[str, Any], None] = None,
        **overrides: Any,
    ) -> ServerHandle:
        """
        Create a server, wire it up and start listening.

        Must be called from a running asyncio event loop. Returns the
        ServerHandle straight away; "server.listening" follows once bound.

        Raises:
            ConfigConflict, InvalidServerModule, ModuleNotFound,
            MiddlewareResolutionError, ValueError
        """
        options = self.resolve_options(options, **overrides)
        self.options = options
        resolver = ModuleResolver(options.module_prefix, options.module_dir)

        server = self.create_server(options, resolver)
        if options.max_connections is not None:
            server.max_connections = options.max_connections
        if options.keep_alive_timeout is not None:
            server.keep_alive_timeout = options.keep_alive_timeout

        self.create_server_event_stream(server, options)
        self.propagate(server)

        stack = MiddlewareStack.from_specs(options.stack, options, resolver)
        self.propagate(stack)
        self.stack = stack

        pipeline = MiddlewarePipeline()
        pipeline.on("error", lambda err, request: self.verbose("app.error", err))
        pipeline.use(*stack.get_middleware_functions(options))
        server.request_handler = pipeline.callback()

        server.listen(options.port, options.hostname)
        self.start_memory_stats(server)
        return server

    def create_server(
        self,
        options: Union[ServerOptions, Mapping[str, Any]],
        resolver: Optional[ModuleResolver] = None,
    ) -> ServerHandle:
        """
        Validate the transport options and build a (not yet listening) server.
        """
        if not isinstance(options, ServerOptions):
            options = ServerOptions.from_dict(options)
        factory = select_server_factory(options, resolver)
        self.propagate(factory)
        return factory.create(options)

    def start_memory_stats(self, server: ServerHandle) -> asyncio.TimerHandle:
        """
        Emit "process.memoryUsage" every memory_usage_interval seconds until
        the server closes or fails to bind.

        A loop timer does not keep asyncio.run() alive on its own.
        """
        loop = asyncio.get_running_loop()
        timer: Optional[asyncio.TimerHandle] = None

        def tick():
            nonlocal timer
            usage = {name: byte_size(value) for name, value in memory_usage().items()}
            self.verbose("process.memoryUsage", usage)
            timer = loop.call_later(self.memory_usage_interval, tick)

        def stop(*args):
            if timer is not None:
                timer.cancel()

        timer = loop.call_later(self.memory_usage_interval, tick)
        server.once("close", stop)
        server.once("error", stop)
        return timer
