"""
=============================================================================
MIDDLEWARE STACK
=============================================================================

Turns the stack option, a mix of classes, callables, objects, module names
and file paths, into an ordered list of middleware, then into the ordered
list of handlers the request pipeline runs.

    specs            from_specs()              get_middleware_functions()
    ─────            ────────────              ──────────────────────────
    [Cors,     ──►   [MiddlewareInstance, ──►  [cors_handler,
     "static",        MiddlewareInstance,       static_handler,
     Log()]           MiddlewareInstance]       log_handler]

Order is preserved end to end: the first spec produces the first handler,
the first handler sees the request first.

Assembly is fail-fast. The first spec that cannot be resolved raises and
nothing built so far is returned.

=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional

from ..errors import MiddlewareNotFound, MiddlewareResolutionError
from ..events import EventEmitter
from ..resolver import ModuleResolver
from .base import Handler, is_middleware

logger = logging.getLogger(__name__)


@dataclass
class MiddlewareInstance:
    """A resolved stack entry: the original spec, the object and its options."""

    spec: Any
    middleware: Any
    options: Any = None

    @property
    def name(self) -> str:
        return getattr(self.middleware, "name", type(self.middleware).__name__)


class MiddlewareStack(EventEmitter):
    """
    Ordered sequence of MiddlewareInstance.

    Middleware that are EventEmitters are propagated into the stack's own
    verbose stream, so one propagate(stack) forwards all of them.
    """

    def __init__(self, instances: Iterable[MiddlewareInstance] = ()):
        super().__init__()
        self.instances: List[MiddlewareInstance] = list(instances)
        for instance in self.instances:
            if isinstance(instance.middleware, EventEmitter):
                self.propagate(instance.middleware)

    @classmethod
    def from_specs(
        cls,
        specs: Any,
        options: Any,
        resolver: Optional[ModuleResolver] = None,
    ) -> "MiddlewareStack":
        """
        Resolve every spec, in order.

        An existing MiddlewareStack (alone or as the only entry) is returned
        unchanged.

        Raises:
            MiddlewareNotFound: A name/path matched no module.
            MiddlewareResolutionError: A spec could not produce a middleware.
        """
        if isinstance(specs, MiddlewareStack):
            return specs
        if specs is None:
            specs = []
        elif isinstance(specs, (str, bytes)) or not isinstance(specs, (list, tuple)):
            specs = [specs]
        if len(specs) == 1 and isinstance(specs[0], MiddlewareStack):
            return specs[0]

        if resolver is None:
            resolver = ModuleResolver(
                getattr(options, "module_prefix", ""),
                getattr(options, "module_dir", ()),
            )

        instances = [cls._resolve(spec, options, resolver) for spec in specs]
        logger.debug(f"Middleware stack: {[i.name for i in instances]}")
        return cls(instances)

    @staticmethod
    def _resolve(spec: Any, options: Any, resolver: ModuleResolver) -> MiddlewareInstance:
        target = spec
        if isinstance(spec, str):
            target = resolver.load(spec)
            if target is None:
                raise MiddlewareNotFound(
                    f"Middleware not found: {spec} (tried: {', '.join(resolver.tried)})",
                    spec=spec,
                    tried=resolver.tried,
                )

        if is_middleware(target):
            middleware = target
        elif callable(target):
            middleware = target(options)
            if not is_middleware(middleware):
                raise MiddlewareResolutionError(
                    f"Invalid middleware: {spec!r} produced {middleware!r}, "
                    f"which has no middleware(options) method",
                    spec=spec,
                )
        else:
            raise MiddlewareResolutionError(
                f"Invalid middleware: {spec!r} is not a middleware class, factory or object",
                spec=spec,
            )

        return MiddlewareInstance(spec=spec, middleware=middleware, options=options)

    def get_middleware_functions(self, options: Any = None) -> List[Handler]:
        """
        Ask every middleware for its handler(s), in stack order.

        None results are skipped; list results are flattened in place.
        """
        functions: List[Handler] = []
        for instance in self.instances:
            result = instance.middleware.middleware(options if options is not None else instance.options)
            if result is None:
                continue
            if isinstance(result, (list, tuple)):
                functions.extend(f for f in result if f is not None)
            else:
                functions.append(result)
        return functions

    @property
    def names(self) -> List[str]:
        return [instance.name for instance in self.instances]

    def __len__(self) -> int:
        return len(self.instances)

    def __iter__(self) -> Iterator[MiddlewareInstance]:
        return iter(self.instances)

    def __getitem__(self, index: int) -> MiddlewareInstance:
        return self.instances[index]
