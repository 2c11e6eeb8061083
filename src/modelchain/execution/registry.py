"""Step Registry - injectable name -> step-factory lookup.

Manifesto:
The resolver needs to turn ``"throttle"`` plus ``{"wait": 0.5}`` into a
runnable step for the current environment. The registry decouples
registration (at import time or in a loader) from resolution (when a
chain is assembled), and supports both a global default instance and
injectable instances for testing.

ARCHITECTURE
────────────
::

    StepRegistry
      ├── .register(name, factory, scope)  ─ store factory in the scope table
      ├── .lookup(name, scope)             ─ dual table first, then scope table
      ├── .list_steps()                    ─ all (scope, name) pairs
      ├── .add_loader(loader)              ─ deferred registration
      └── await .ensure_ready()            ─ run pending loaders once

    Convenience decorators (default registry unless one is passed):
      register_step(name, scope)   privileged_step(name)
      restricted_step(name)        dual_step(name)

    get_default_registry()     ─ module-level singleton (built-ins loaded)
    reset_default_registry()   ─ clear for testing

A *factory* takes the spec's ``args`` (``None`` for bare specs) and returns
a step ``async (view, call_next) -> Outcome | None``.

BEST PRACTICES
──────────────
- Register application steps from a loader so import order does not matter.
- Pass an explicit ``StepRegistry`` in tests, or call
  ``reset_default_registry()`` in fixtures.

Tags:
    modelchain, execution, registry, step-registry, lookup

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from modelchain.core.errors import InvalidConfigError
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import ViewStep
from modelchain.execution.scope import Scope

logger = get_logger(__name__)

StepFactory = Callable[[Any], ViewStep]
Loader = Callable[["StepRegistry"], Awaitable[None] | None] | str


@dataclass(frozen=True)
class RegisteredStep:
    """A registry entry."""

    name: str
    scope: Scope
    factory: StepFactory
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "scope": self.scope.value,
            "description": self.description,
            "factory": _factory_name(self.factory),
        }


class StepRegistry:
    """Injectable step registry partitioned by scope.

    Example:
        >>> registry = StepRegistry()
        >>>
        >>> @register_step("audit", scope="privileged", registry=registry)
        ... def audit(args):
        ...     async def step(view, call_next):
        ...         view.environment_handle.log(view.key)
        ...         return await call_next()
        ...     return step
        >>>
        >>> registry.lookup("audit", Scope.PRIVILEGED).name
        'audit'
        >>> registry.lookup("audit", Scope.RESTRICTED) is None
        True
    """

    def __init__(self) -> None:
        self._tables: dict[Scope, dict[str, RegisteredStep]] = {scope: {} for scope in Scope}
        self._lock = threading.RLock()
        self._loaders: list[Loader] = []
        self._ready_lock: asyncio.Lock | None = None

    # ── Registration ─────────────────────────────────────────────

    def register(
        self,
        name: str,
        factory: StepFactory,
        scope: Scope | str = Scope.DUAL,
        description: str | None = None,
    ) -> None:
        """Register a step factory.

        A second registration under the same name and scope replaces the
        first.

        Args:
            name: Step name used in specs
            factory: ``factory(args) -> step``
            scope: Table to register into (privileged, restricted, dual)
            description: Optional description for listings
        """
        if not name:
            raise InvalidConfigError("name", name, "Step name must not be empty")
        step_scope = Scope.parse(scope)
        with self._lock:
            replaced = name in self._tables[step_scope]
            self._tables[step_scope][name] = RegisteredStep(
                name=name,
                scope=step_scope,
                factory=factory,
                description=description or _first_line(_unwrap(factory).__doc__),
            )
        logger.debug("step_registered", step=name, scope=step_scope.value, replaced=replaced)

    def unregister(self, name: str, scope: Scope | str | None = None) -> bool:
        """Remove a step from one table (or all tables when scope is None).

        Returns:
            True if anything was removed
        """
        scopes = list(Scope) if scope is None else [Scope.parse(scope)]
        removed = False
        with self._lock:
            for s in scopes:
                removed = self._tables[s].pop(name, None) is not None or removed
        return removed

    def clear(self) -> None:
        """Remove all steps and pending loaders (for testing)."""
        with self._lock:
            for table in self._tables.values():
                table.clear()
            self._loaders.clear()

    # ── Lookup ───────────────────────────────────────────────────

    def lookup(self, name: str, scope: Scope | str) -> RegisteredStep | None:
        """Find the entry for ``name`` in an execution scope.

        The dual table wins over the scope-specific one. Never raises for
        an unknown name.
        """
        env = Scope.parse(scope)
        with self._lock:
            found = self._tables[Scope.DUAL].get(name)
            if found is None and env is not Scope.DUAL:
                found = self._tables[env].get(name)
            return found

    def has(self, name: str, scope: Scope | str | None = None) -> bool:
        """Check if a step is registered (in any table when scope is None)."""
        if scope is None:
            with self._lock:
                return any(name in table for table in self._tables.values())
        return self.lookup(name, scope) is not None

    def list_steps(self, scope: Scope | str | None = None) -> list[tuple[str, str]]:
        """List registered steps as sorted ``(scope, name)`` pairs.

        Args:
            scope: Optional filter. An execution scope lists what resolves
                there (its own table plus dual); dual lists the dual table.
        """
        with self._lock:
            if scope is None:
                scopes = list(Scope)
            else:
                wanted = Scope.parse(scope)
                scopes = [wanted] if wanted is Scope.DUAL else [wanted, Scope.DUAL]
            return sorted((s.value, name) for s in scopes for name in self._tables[s])

    def describe(self) -> list[dict[str, Any]]:
        """Registered steps with their metadata, for listings and the CLI."""
        with self._lock:
            entries = [entry for table in self._tables.values() for entry in table.values()]
        return sorted((e.to_dict() for e in entries), key=lambda d: (d["scope"], d["name"]))

    # ── Readiness ────────────────────────────────────────────────

    def add_loader(self, loader: Loader) -> None:
        """Queue a loader run by the next ``ensure_ready()``.

        Args:
            loader: ``loader(registry)`` (sync or async), or an import path
                ``"package.module:function"`` resolved lazily
        """
        with self._lock:
            self._loaders.append(loader)

    @property
    def is_ready(self) -> bool:
        """True when no loader is pending."""
        with self._lock:
            return not self._loaders

    async def ensure_ready(self) -> None:
        """Run every pending loader exactly once.

        Concurrent callers wait for the same loading pass. A loader leaves
        the queue only after it succeeds, so one that raises runs again on
        the next call.
        """
        if self.is_ready:
            return
        if self._ready_lock is None:
            self._ready_lock = asyncio.Lock()
        async with self._ready_lock:
            while True:
                with self._lock:
                    if not self._loaders:
                        break
                    loader = self._loaders[0]
                await self._run_loader(loader)
                with self._lock:
                    if self._loaders and self._loaders[0] is loader:
                        self._loaders.pop(0)

    async def _run_loader(self, loader: Loader) -> None:
        func = _import_loader(loader) if isinstance(loader, str) else loader
        result = func(self)
        if inspect.isawaitable(result):
            await result
        logger.debug("step_loader_completed", loader=_loader_name(loader))


def _import_loader(path: str) -> Callable[[StepRegistry], Any]:
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise InvalidConfigError("loader", path, f"Loader path must look like 'package.module:function', got {path!r}")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise InvalidConfigError("loader", path, f"Cannot import loader {path!r}: {e}") from e


def _loader_name(loader: Loader) -> str:
    if isinstance(loader, str):
        return loader
    return getattr(loader, "__qualname__", repr(loader))


def _unwrap(factory: StepFactory) -> Any:
    # functools.partial bindings keep the real factory on .func
    return getattr(factory, "func", factory)


def _factory_name(factory: StepFactory) -> str:
    target = _unwrap(factory)
    return getattr(target, "__qualname__", None) or repr(target)


def _first_line(doc: str | None) -> str | None:
    if not doc:
        return None
    return doc.strip().splitlines()[0]


# === GLOBAL DEFAULT REGISTRY ===

BUILTIN_LOADERS: tuple[str, ...] = (
    "modelchain.controls:register_controls",
    "modelchain.steps:register_builtin_steps",
)

_default_registry: StepRegistry | None = None
_default_lock = threading.Lock()


def get_default_registry() -> StepRegistry:
    """Get the global default registry.

    Created lazily on first access with the built-in control and step
    loaders queued.
    """
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            registry = StepRegistry()
            for loader in BUILTIN_LOADERS:
                registry.add_loader(loader)
            _default_registry = registry
        return _default_registry


def reset_default_registry() -> None:
    """Drop the global default registry (for testing)."""
    global _default_registry
    with _default_lock:
        _default_registry = None


# === DECORATORS ===


def register_step(
    name: str,
    scope: Scope | str = Scope.DUAL,
    registry: StepRegistry | None = None,
    description: str | None = None,
) -> Callable[[StepFactory], StepFactory]:
    """Decorator to register a step factory.

    Example:
        >>> @register_step("audit", scope="privileged")
        ... def audit(args):
        ...     async def step(view, call_next):
        ...         return await call_next()
        ...     return step
    """

    def decorator(factory: StepFactory) -> StepFactory:
        reg = registry or get_default_registry()
        reg.register(name, factory, scope=scope, description=description)
        return factory

    return decorator


def privileged_step(name: str, registry: StepRegistry | None = None, description: str | None = None):
    """Register a factory for the privileged environment only."""
    return register_step(name, Scope.PRIVILEGED, registry, description)


def restricted_step(name: str, registry: StepRegistry | None = None, description: str | None = None):
    """Register a factory for the restricted environment only."""
    return register_step(name, Scope.RESTRICTED, registry, description)


def dual_step(name: str, registry: StepRegistry | None = None, description: str | None = None):
    """Register a factory that runs in both environments."""
    return register_step(name, Scope.DUAL, registry, description)


__all__ = [
    "BUILTIN_LOADERS",
    "Loader",
    "RegisteredStep",
    "StepFactory",
    "StepRegistry",
    "dual_step",
    "get_default_registry",
    "privileged_step",
    "register_step",
    "reset_default_registry",
    "restricted_step",
]
