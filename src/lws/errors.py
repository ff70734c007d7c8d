"""
=============================================================================
STARTUP ERRORS
=============================================================================

Every error raised while bootstrapping a server derives from LwsError, so a
caller can catch the whole family with one except clause:

    LwsError
    ├── ConfigConflict              key/cert/pfx/https combinations
    ├── InvalidServerModule         bad --server value
    │   └── ServerModuleNotFound    (also a ModuleNotFound)
    ├── MiddlewareResolutionError   bad --stack entry
    │   └── MiddlewareNotFound      (also a ModuleNotFound)
    └── ModuleNotFound              nothing matched the name

These are all raised synchronously, before anything is listening. Errors that
happen on a live socket are never raised; they are reported on the verbose
event stream as "server.socket.error".

=============================================================================
"""

from typing import Any, Optional, Sequence


class LwsError(Exception):
    """Base class for server bootstrap errors."""


class ConfigConflict(LwsError):
    """Raised when mutually exclusive TLS options are supplied together."""


class InvalidServerModule(LwsError):
    """
    Raised when the custom server factory option cannot be used.

    Covers a standard-library module name, a module that cannot be found and
    a module whose export does not behave like a server factory decorator.
    """


class MiddlewareResolutionError(LwsError):
    """
    Raised when a middleware spec cannot be turned into middleware.

    Attributes:
        spec: The offending entry from the stack option.
    """

    def __init__(self, message: str, spec: Any = None):
        super().__init__(message)
        self.spec = spec


class ModuleNotFound(LwsError):
    """
    Raised when the module resolver finds nothing for a name.

    Attributes:
        name: The name that was looked up.
        tried: Candidate locations that were checked, in order.
    """

    def __init__(self, message: str, name: str = "", tried: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.name = name
        self.tried = list(tried or [])


class ServerModuleNotFound(ModuleNotFound, InvalidServerModule):
    """The module named by the server option could not be located."""


class MiddlewareNotFound(ModuleNotFound, MiddlewareResolutionError):
    """A module named in the stack option could not be located."""

    def __init__(self, message: str, spec: Any = None, tried: Optional[Sequence[str]] = None):
        ModuleNotFound.__init__(self, message, name=str(spec), tried=tried)
        self.spec = spec
