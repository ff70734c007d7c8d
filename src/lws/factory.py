"""
=============================================================================
SERVER FACTORY CHAIN
=============================================================================

Picks the transport for a server and builds its ServerHandle.

    ServerFactory                 plain HTTP, the base every variant wraps
    HttpsServerFactory(base)      + TLS context (key/cert, pfx or built-in)
    Http2ServerFactory(base)      + ALPN "h2", "http/1.1" on the TLS context
    <plugin>(ServerFactory)       user-supplied subclass, e.g. --server lws-foo

Decorators hold the factory they wrap and delegate create() to it, so every
variant gets the same ServerHandle and connection wiring. Only one decorator
is ever selected:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       FACTORY SELECTION                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   key xor cert ───────────────────────────────► ConfigConflict       │
    │   https and pfx ──────────────────────────────► ConfigConflict       │
    │                                                                      │
    │   https, or (not http2 and (key+cert or pfx)) ─► HTTPS               │
    │   http2 ──────────────────────────────────────► HTTP2                │
    │   server ─────────────────────────────────────► CUSTOM               │
    │   otherwise ──────────────────────────────────► BASE                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WRITING A SERVER PLUGIN
=============================================================================

A --server module exports a function (as `plugin`, or named with
"module:function") that receives the base factory class and returns a
subclass:

    def plugin(ServerFactory):
        class LoggingServerFactory(ServerFactory):
            def create(self, options):
                server = super().create(options)
                self.verbose("server.factory", type(self).__name__)
                return server
        return LoggingServerFactory

=============================================================================
"""

import logging
from enum import Enum
from typing import Optional

from .config import ServerOptions
from .core.socket_server import ServerHandle
from .errors import ConfigConflict, InvalidServerModule, ServerModuleNotFound
from .events import EventEmitter
from .resolver import ModuleResolver
from .tls import build_ssl_context
from .util import is_builtin_module

logger = logging.getLogger(__name__)


class FactoryKind(Enum):
    """Which server factory a set of options selects."""
    BASE = "http"
    HTTPS = "https"
    HTTP2 = "http2"
    CUSTOM = "custom"


def validate_tls_options(options: ServerOptions) -> None:
    """
    Raises:
        ConfigConflict: For key without cert (or the reverse), or https with pfx.
    """
    if bool(options.key) != bool(options.cert):
        raise ConfigConflict("--key and --cert must always be supplied together.")
    if options.https and options.pfx:
        raise ConfigConflict("please use one of --https or --pfx, not both.")


def choose_factory_kind(options: ServerOptions) -> FactoryKind:
    """Decide the factory variant. Pure: no I/O, no resolution."""
    has_material = bool(options.key and options.cert) or bool(options.pfx)
    if options.https or (not options.http2 and has_material):
        return FactoryKind.HTTPS
    if options.http2:
        return FactoryKind.HTTP2
    if options.server:
        return FactoryKind.CUSTOM
    return FactoryKind.BASE


# =============================================================================
# FACTORIES
# =============================================================================

class ServerFactory(EventEmitter):
    """Creates plain HTTP servers."""

    def create(self, options: ServerOptions) -> ServerHandle:
        logger.debug(f"{type(self).__name__} creating server")
        return ServerHandle()


class HttpsServerFactory(ServerFactory):
    """
    Wraps another factory and secures the server it creates with TLS.

    The TLS material comes from key/cert, pfx, or the built-in self-signed
    certificate, in that order. ciphers and secure_protocol are applied to
    the context.
    """

    alpn_protocols = ()

    def __init__(self, wrapped: Optional[ServerFactory] = None):
        super().__init__()
        self.wrapped = wrapped if wrapped is not None else ServerFactory()
        self.propagate(self.wrapped)

    def create(self, options: ServerOptions) -> ServerHandle:
        server = self.wrapped.create(options)
        server.ssl_context = build_ssl_context(options, self.alpn_protocols)
        server.alpn_protocols = tuple(self.alpn_protocols)
        logger.debug(f"{type(self).__name__} attached TLS context")
        return server


class Http2ServerFactory(HttpsServerFactory):
    """
    HTTPS plus HTTP/2: offers "h2" through ALPN, with HTTP/1.1 as fallback
    for clients that do not speak HTTP/2.
    """

    alpn_protocols = ("h2", "http/1.1")


# =============================================================================
# SELECTION
# =============================================================================

def load_custom_factory(options: ServerOptions, resolver: Optional[ModuleResolver] = None) -> ServerFactory:
    """
    Resolve the server option and apply it to the base factory.

    Raises:
        InvalidServerModule: Standard-library name, non-callable export, or an
            export that does not return a ServerFactory subclass.
        ServerModuleNotFound: Nothing matched the name.
    """
    decorator = options.server
    if isinstance(decorator, str):
        if is_builtin_module(decorator):
            raise InvalidServerModule(
                "please supply a third party module name to --server, not a standard library module name"
            )
        if resolver is None:
            resolver = ModuleResolver(options.module_prefix, options.module_dir)
        name = decorator
        decorator = resolver.load(name)
        if decorator is None:
            raise ServerModuleNotFound(f"Server module not found: {name}", name=name, tried=resolver.tried)

    if not callable(decorator):
        raise InvalidServerModule("Invalid module supplied to --server, it should export a function.")

    factory_class = decorator(ServerFactory)
    if not (isinstance(factory_class, type) and issubclass(factory_class, ServerFactory)):
        raise InvalidServerModule(
            f"Invalid module supplied to --server: {decorator!r} must return a ServerFactory subclass, "
            f"got {factory_class!r}"
        )
    return factory_class()


def select_server_factory(options: ServerOptions, resolver: Optional[ModuleResolver] = None) -> ServerFactory:
    """
    Validate the options and instantiate the factory they select.

    Raises:
        ConfigConflict, InvalidServerModule, ServerModuleNotFound
    """
    validate_tls_options(options)
    kind = choose_factory_kind(options)
    logger.debug(f"Selected {kind.value} server factory")

    if kind == FactoryKind.HTTPS:
        return HttpsServerFactory(ServerFactory())
    if kind == FactoryKind.HTTP2:
        return Http2ServerFactory(ServerFactory())
    if kind == FactoryKind.CUSTOM:
        return load_custom_factory(options, resolver)
    return ServerFactory()
