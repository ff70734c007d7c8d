"""
=============================================================================
PLUGIN MODULE RESOLVER
=============================================================================

Turns a short name from the command line or config file into a loaded
Python module. Both the --server and --stack options go through here.

=============================================================================
LOOKUP ORDER
=============================================================================

Given name="cors", prefix="lws-", search_paths=["./plugins"]:

    candidates:  "lws-cors", "cors"       (prefix first, unless already there)

    for each candidate:
      1. an existing file or package path      ./lws-cors.py, ./lws-cors/
      2. each search directory                 ./plugins/lws-cors.py
                                               ./plugins/lws_cors.py
                                               ./plugins/lws_cors/__init__.py
      3. a regular import                      import lws_cors

Dashes are not valid in import names, so "lws-cors" is imported as
"lws_cors" (the same mapping pip uses between distribution and package).

A name may pick an attribute explicitly with "module:attribute". Without
one, the export is the module's `plugin` attribute when defined, otherwise
the module itself.

Not finding anything is a normal outcome: resolve() and load() return None
and the caller decides which error to raise. A module that IS found but
fails while importing raises its own error unchanged.

=============================================================================
"""

import importlib
import importlib.util
import logging
import os
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Module attribute holding a plugin's export
PLUGIN_ATTRIBUTE = "plugin"


def _import_name(candidate: str) -> str:
    return candidate.replace("-", "_")


class ModuleResolver:
    """
    Locates plugin modules by name, prefix and search directories.

    Resolved modules are cached per resolver, so resolving the same name twice
    returns the same module object.
    """

    def __init__(self, prefix: str = "", search_paths: Optional[Sequence[str]] = None):
        self.prefix = prefix or ""
        self.search_paths = [str(p) for p in (search_paths or [])]
        self._cache: Dict[str, ModuleType] = {}
        self.tried: List[str] = []

    def candidates(self, name: str) -> List[str]:
        """Names to try for `name`, prefixed form first."""
        if self.prefix and not name.startswith(self.prefix) and not _looks_like_path(name):
            return [self.prefix + name, name]
        return [name]

    def resolve(self, name: str) -> Optional[ModuleType]:
        """
        Load the module for `name`.

        Returns:
            The module, or None when nothing matched. The locations checked
            are left in `self.tried`.
        """
        self.tried = []
        module_name = name.split(":", 1)[0] if _has_attribute(name) else name
        if module_name in self._cache:
            return self._cache[module_name]

        module = None
        for candidate in self.candidates(module_name):
            module = self._from_path(candidate) or self._from_search_paths(candidate)
            if module is None:
                module = self._from_import(candidate)
            if module is not None:
                break

        if module is None:
            logger.debug(f"No module found for {name!r}, tried: {self.tried}")
            return None

        logger.debug(f"Resolved {name!r} to {module.__name__}")
        self._cache[module_name] = module
        return module

    def load(self, name: str) -> Optional[Any]:
        """
        Resolve `name` and return what the module exports.

        Returns:
            The "module:attribute" target, the module's `plugin` attribute,
            or the module itself. None when the module (or the explicitly
            requested attribute) does not exist.
        """
        module = self.resolve(name)
        if module is None:
            return None

        if _has_attribute(name):
            attribute = name.split(":", 1)[1]
            if not hasattr(module, attribute):
                self.tried.append(f"{module.__name__}:{attribute}")
                return None
            return getattr(module, attribute)

        return getattr(module, PLUGIN_ATTRIBUTE, module)

    # =========================================================================
    # LOOKUP STRATEGIES
    # =========================================================================

    def _from_path(self, candidate: str) -> Optional[ModuleType]:
        if not _looks_like_path(candidate):
            return None
        return self._load_file(Path(candidate))

    def _from_search_paths(self, candidate: str) -> Optional[ModuleType]:
        for directory in self.search_paths:
            base = Path(directory)
            for filename in dict.fromkeys((candidate, _import_name(candidate))):
                for path in (base / f"{filename}.py", base / filename):
                    module = self._load_file(path)
                    if module is not None:
                        return module
        return None

    def _from_import(self, candidate: str) -> Optional[ModuleType]:
        import_name = _import_name(candidate)
        self.tried.append(f"import {import_name}")
        if not all(part.isidentifier() for part in import_name.split(".")):
            return None
        try:
            return importlib.import_module(import_name)
        except ModuleNotFoundError as e:
            # Only "this module does not exist" counts as not found. A missing
            # dependency inside the plugin is the plugin's error.
            if e.name == import_name or import_name.startswith(f"{e.name}."):
                return None
            raise

    def _load_file(self, path: Path) -> Optional[ModuleType]:
        """Load a .py file, or a package directory via its __init__.py."""
        self.tried.append(str(path))
        if path.is_dir():
            path = path / "__init__.py"
        if not path.is_file():
            return None

        key = str(path.resolve())
        if key in self._cache:
            return self._cache[key]

        module_name = "lws_plugin_" + _import_name(path.parent.name if path.name == "__init__.py" else path.stem)
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            return None
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        self._cache[key] = module
        return module


def _looks_like_path(name: str) -> bool:
    return (
        name.endswith(".py")
        or os.sep in name
        or "/" in name
        or name.startswith(".")
        or os.path.exists(name)
    )


def _has_attribute(name: str) -> bool:
    # "C:\\plugins\\x.py" is a path, not module:attribute
    head, sep, tail = name.partition(":")
    return bool(sep) and bool(tail) and len(head) > 1 and tail.isidentifier()
