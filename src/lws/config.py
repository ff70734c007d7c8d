"""
=============================================================================
SERVER OPTIONS
=============================================================================

Centralized configuration for one server instance.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Explicit options (CLI arguments, Lws.listen(...) arguments)    │
    │      └── python -m lws --port 3000                                  │
    │                                                                      │
    │   2. Configuration file (YAML mapping)                              │
    │      └── lws.config.yaml in the working directory                   │
    │                                                                      │
    │   3. Environment variables                                          │
    │      └── LWS_PORT=3000 python -m lws                                │
    │                                                                      │
    │   4. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Sources are deep-merged: nested mappings are merged key by key, anything
else (including lists) is replaced by the higher-priority value.

Option names may be written in snake_case or in the camelCase used by
existing lws config files:

    maxConnections: 100          same as   max_connections: 100
    moduleDir: [./plugins]                 module_dir: [./plugins]

Unknown names are not an error. They are kept in `extras` because they
usually belong to a middleware (e.g. "directory" for a static file server),
which reads them with options.get("directory").

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8000
DEFAULT_MODULE_PREFIX = "lws-"
DEFAULT_CONFIG_FILE = "lws.config.yaml"

# camelCase spellings accepted from config files and Lws.listen(**options)
OPTION_ALIASES = {
    "maxConnections": "max_connections",
    "keepAliveTimeout": "keep_alive_timeout",
    "secureProtocol": "secure_protocol",
    "modulePrefix": "module_prefix",
    "moduleDir": "module_dir",
    "configFile": "config_file",
}


@dataclass(frozen=True)
class ServerOptions:
    """
    Resolved configuration for one server.

    =========================================================================
    OPTION GROUPS
    =========================================================================

    NETWORK
    - port, hostname, max_connections, keep_alive_timeout

    TRANSPORT
    - https, http2, key, cert, pfx, ciphers, secure_protocol, server

    MIDDLEWARE
    - stack, module_prefix, module_dir

    Validation of the TLS combinations (key without cert, https with pfx)
    happens when the server factory is selected, not here, so that a bad
    combination is reported as a ConfigConflict.

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    port: int = DEFAULT_PORT
    hostname: Optional[str] = None
    """Host or IP to listen on. None = every interface."""

    max_connections: Optional[int] = None
    keep_alive_timeout: Optional[int] = None
    """Idle time (milliseconds) before a keep-alive connection is closed. 0 = never."""

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    https: bool = False
    """Serve HTTPS. Without key/cert a built-in self-signed certificate is used."""

    http2: bool = False
    key: Optional[str] = None
    cert: Optional[str] = None
    pfx: Optional[str] = None
    """PKCS#12 bundle holding key and certificate chain, instead of key + cert."""

    ciphers: Optional[str] = None
    secure_protocol: Optional[str] = None
    """OpenSSL-style method name, e.g. "TLSv1_2_method"."""

    server: Optional[Union[str, Callable[..., Any]]] = None
    """Custom server factory: a module name/path, or the decorator itself."""

    # ─────────────────────────────────────────────────────────────────────
    # MIDDLEWARE SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    stack: Tuple[Any, ...] = ()
    module_prefix: str = DEFAULT_MODULE_PREFIX
    module_dir: Tuple[str, ...] = ()

    config_file: Optional[str] = DEFAULT_CONFIG_FILE
    extras: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Frozen: normalise sequences through object.__setattr__
        object.__setattr__(self, "stack", _as_tuple(self.stack))
        object.__setattr__(self, "module_dir", tuple(str(d) for d in _as_tuple(self.module_dir)))

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "ServerOptions":
        """
        Build options from a mapping of snake_case or camelCase names.

        Unknown names end up in `extras`.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        extras: Dict[str, Any] = dict(options.get("extras") or {})

        for name, value in options.items():
            if name == "extras":
                continue
            name = OPTION_ALIASES.get(name, name)
            if name in known:
                values[name] = value
            else:
                extras[name] = value

        values["extras"] = extras
        return cls(**values)

    @classmethod
    def from_env(cls) -> "ServerOptions":
        """
        Create options from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        LWS_PORT         Port (default: 8000)
        LWS_HOSTNAME     Hostname or IP to listen on (default: all)
        LWS_MODULE_DIR   Plugin search directories, os.pathsep separated

        =====================================================================
        """
        return cls.from_dict(env_options())

    def to_dict(self) -> Dict[str, Any]:
        """Explicitly set options as a flat mapping (extras inlined)."""
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extras"}
        values.update(self.extras)
        return values

    def replace(self, **changes: Any) -> "ServerOptions":
        return replace(self, **changes)

    def get(self, name: str, default: Any = None) -> Any:
        """
        Look up an option by name, including middleware-specific extras.

        Middleware use this to read their own settings:

            directory = options.get("directory", ".")
        """
        name = OPTION_ALIASES.get(name, name)
        if name != "extras" and name in {f.name for f in fields(self)}:
            return getattr(self, name)
        return self.extras.get(name, default)

    def validate(self) -> None:
        """
        Validate scalar option values.

        Fail fast at startup with a clear message rather than deep inside
        the event loop.
        """
        if not isinstance(self.port, int) or not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.max_connections is not None and self.max_connections < 0:
            raise ValueError("max_connections must be >= 0")
        if self.keep_alive_timeout is not None and self.keep_alive_timeout < 0:
            raise ValueError("keep_alive_timeout must be >= 0")


# =============================================================================
# MERGING AND LOADING
# =============================================================================

def deep_merge(*sources: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge mappings left to right; later values win.

    Nested mappings are merged recursively. None values in a later mapping
    do not overwrite a value set by an earlier one, so unset CLI flags keep
    the config file's value.
    """
    result: Dict[str, Any] = {}
    for source in sources:
        if not source:
            continue
        for name, value in source.items():
            if value is None and name in result:
                continue
            if isinstance(value, Mapping) and isinstance(result.get(name), Mapping):
                result[name] = deep_merge(result[name], value)
            else:
                result[name] = value
    return result


def normalise_names(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Map camelCase option names to their snake_case field names."""
    return {OPTION_ALIASES.get(name, name): value for name, value in options.items()}


def env_options() -> Dict[str, Any]:
    """Options found in LWS_* environment variables."""
    options: Dict[str, Any] = {}
    if os.getenv("LWS_PORT"):
        options["port"] = int(os.environ["LWS_PORT"])
    if os.getenv("LWS_HOSTNAME"):
        options["hostname"] = os.environ["LWS_HOSTNAME"]
    if os.getenv("LWS_MODULE_DIR"):
        options["module_dir"] = [d for d in os.environ["LWS_MODULE_DIR"].split(os.pathsep) if d]
    return options


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """
    Read stored options from a YAML config file.

    A missing file is not an error, it just contributes nothing.

    Raises:
        ValueError: If the file does not contain a mapping.
    """
    if not path:
        return {}
    config_path = Path(path)
    if not config_path.is_file():
        logger.debug(f"No config file at {config_path}")
        return {}

    with config_path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Config file {config_path} must contain a mapping, got {type(data).__name__}")

    logger.info(f"Loaded options from {config_path}")
    return normalise_names(data)


def load_options(overrides: Optional[Mapping[str, Any]] = None) -> ServerOptions:
    """
    Resolve the final ServerOptions: defaults < env < config file < overrides.

    The config file location itself comes from the overrides (or the
    default lws.config.yaml).
    """
    overrides = normalise_names(overrides or {})
    config_file = overrides.get("config_file") or DEFAULT_CONFIG_FILE
    merged = deep_merge(
        env_options(),
        load_config_file(config_file),
        overrides,
    )
    # An option still None after the merge falls back to its default
    options = ServerOptions.from_dict({name: value for name, value in merged.items() if value is not None})
    options.validate()
    return options


def _as_tuple(value: Any) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return (value,)
    return tuple(value)
