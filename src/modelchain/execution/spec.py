"""Step specifications - what to run, declaratively.

A pipeline is an ordered tuple of specs. Each spec names a registered step
and optionally configures it:

    Bare("audit")                                    name only
    Configured("throttle", {"wait": 0.5})            name + factory args (+ scope)
    Nested("persist", None, (Bare("connect"), ...))  name + children sub-pipeline

Spec lists are built once, when a model's operations are defined, and are
immutable afterwards.

Manifesto:
    A single tagged union for every way a step can be declared means the
    resolver never inspects shapes at run time: it matches on the type.

Tags:
    modelchain, execution, spec, declarative, pipeline

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from modelchain.core.errors import InvalidConfigError, SpecDefinitionError
from modelchain.execution.scope import Scope


@dataclass(frozen=True)
class Bare:
    """A step declared by name only."""

    name: str


@dataclass(frozen=True)
class Configured:
    """A step declared with factory arguments and an optional scope.

    ``scope`` restricts the entry to one environment; the default, dual,
    keeps it in both.
    """

    name: str
    args: Any = None
    scope: Scope = Scope.DUAL


@dataclass(frozen=True)
class Nested:
    """A step carrying a children sub-pipeline.

    The children only run in the privileged environment, before the named
    main step.
    """

    name: str
    args: Any = None
    children: tuple[Spec, ...] = field(default_factory=tuple)


Spec = Bare | Configured | Nested

SpecLike = Spec | str | Mapping[str, Any]


def parse_spec(raw: SpecLike) -> Spec:
    """Convert one raw entry into a Spec.

    Accepted shapes:
        - an existing ``Bare`` / ``Configured`` / ``Nested``
        - ``"name"``
        - ``{"name": ..., "args": ..., "scope" | "stage": ...}``
        - ``{"name": ..., "args": ..., "children" | "middlewares": [...]}``

    Raises:
        SpecDefinitionError: If the entry has no usable name or a bad scope
    """
    if isinstance(raw, (Bare, Configured, Nested)):
        return raw

    if isinstance(raw, str):
        name = raw.strip()
        if not name:
            raise SpecDefinitionError("Step spec name must not be empty")
        return Bare(name)

    if isinstance(raw, Mapping):
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            raise SpecDefinitionError(f"Step spec requires a non-empty 'name': {dict(raw)!r}")
        name = name.strip()
        args = raw.get("args")

        children_raw = raw.get("children")
        if children_raw is None:
            children_raw = raw.get("middlewares")
        if children_raw:
            if isinstance(children_raw, (str, Mapping)) or not isinstance(children_raw, Iterable):
                raise SpecDefinitionError(f"Children of step '{name}' must be a list of specs")
            return Nested(name, args, parse_specs(children_raw))

        scope_raw = raw.get("scope", raw.get("stage"))
        try:
            scope = Scope.parse(scope_raw)
        except InvalidConfigError as e:
            raise SpecDefinitionError(f"Step '{name}' has an unknown scope {scope_raw!r}", cause=e) from e
        return Configured(name, args, scope)

    raise SpecDefinitionError(f"Unsupported step spec: {raw!r}")


def parse_specs(raw_list: Iterable[SpecLike] | None) -> tuple[Spec, ...]:
    """Convert a raw list of entries into an immutable spec tuple."""
    if raw_list is None:
        return ()
    if isinstance(raw_list, (str, Mapping)):
        raise SpecDefinitionError("A pipeline must be a list of step specs")
    return tuple(parse_spec(item) for item in raw_list)


def spec_name(spec: Spec) -> str:
    return spec.name


def spec_args(spec: Spec) -> Any:
    """Factory arguments of a spec (None for bare specs)."""
    if isinstance(spec, Bare):
        return None
    return spec.args


def spec_scope(spec: Spec) -> Scope:
    """Declared scope of a spec entry (dual unless configured otherwise)."""
    if isinstance(spec, Configured):
        return spec.scope
    return Scope.DUAL


def to_raw(spec: Spec) -> str | dict[str, Any]:
    """Inverse of ``parse_spec``: plain data for logging and JSON output."""
    if isinstance(spec, Bare):
        return spec.name
    out: dict[str, Any] = {"name": spec.name}
    if spec.args is not None:
        out["args"] = _raw_args(spec.args)
    if isinstance(spec, Configured):
        if spec.scope is not Scope.DUAL:
            out["scope"] = spec.scope.value
        return out
    out["children"] = [to_raw(child) for child in spec.children]
    return out


def _raw_args(args: Any) -> Any:
    if isinstance(args, Mapping):
        return {k: _raw_args(v) for k, v in args.items()}
    if isinstance(args, (list, tuple)):
        return [to_raw(a) if isinstance(a, (Bare, Configured, Nested)) else _raw_args(a) for a in args]
    if callable(args):
        return getattr(args, "__qualname__", repr(args))
    return args


# =============================================================================
# CONVENIENCE CONSTRUCTORS
# =============================================================================

_UNSET: Any = object()


def throttle(wait: float, default: Any = _UNSET) -> Configured:
    """Reject (or answer with ``default``) calls closer than ``wait`` seconds apart.

    Example:
        >>> throttle(0.5, default=[])
        Configured(name='throttle', args={'wait': 0.5, 'default': []}, scope=<Scope.DUAL: 'dual'>)
    """
    args: dict[str, Any] = {"wait": wait}
    if default is not _UNSET:
        args["default"] = default
    return Configured("throttle", args)


def debounce(wait: float) -> Configured:
    """Collapse calls within a sliding ``wait`` window into one execution."""
    return Configured("debounce", {"wait": wait})


def retryable(retries: int = 3) -> Configured:
    """Re-attempt downstream up to ``retries`` extra times on failure."""
    return Configured("retryable", {"retries": retries})


def cacheable(ttl: float, children: Iterable[SpecLike] | None = None) -> Configured:
    """Cache the terminal payload per subject/operation/arguments for ``ttl`` seconds."""
    args: dict[str, Any] = {"ttl": ttl}
    if children:
        args["children"] = parse_specs(children)
    return Configured("cacheable", args)


def circuit_breaker(
    failure_threshold: int = 5,
    success_threshold: int = 2,
    timeout: float | None = None,
    reset_timeout: float = 30.0,
    fallback: Callable[..., Any] | None = None,
) -> Configured:
    """Fail fast (or fall back) after ``failure_threshold`` consecutive failures."""
    args: dict[str, Any] = {
        "failure_threshold": failure_threshold,
        "success_threshold": success_threshold,
        "reset_timeout": reset_timeout,
    }
    if timeout is not None:
        args["timeout"] = timeout
    if fallback is not None:
        args["fallback"] = fallback
    return Configured("circuit_breaker", args)


def rate_limit(
    max_requests: int = 100,
    window: float = 60.0,
    key_generator: Callable[..., Any] | None = None,
    skip_successful: bool = False,
) -> Configured:
    """Accept at most ``max_requests`` calls per key per ``window`` seconds.

    Example:
        >>> rate_limit(10, window=1.0, key_generator=lambda view: view.arguments["user"])
    """
    args: dict[str, Any] = {"max_requests": max_requests, "window": window, "skip_successful": skip_successful}
    if key_generator is not None:
        args["key_generator"] = key_generator
    return Configured("rate_limit", args)


def run(action: Callable[..., Any] | None = None) -> Configured:
    """Run ``action(ctx)`` after everything downstream has completed."""
    return Configured("run", {"action": action})


def log_request(level: str = "debug", include_args: bool = True, include_state: bool = False) -> Configured:
    """Log the start and end of the operation around downstream steps."""
    return Configured(
        "log_request",
        {"level": level, "include_args": include_args, "include_state": include_state},
    )


def debug(
    log_args: bool = True,
    log_state: bool = False,
    log_timing: bool = True,
    prefix: str = "modelchain",
) -> Configured:
    """Trace the operation around downstream steps at debug level."""
    return Configured(
        "debug",
        {"log_args": log_args, "log_state": log_state, "log_timing": log_timing, "prefix": prefix},
    )


def timed(label: str | None = None, log_results: bool = True, threshold: float = 0.0) -> Configured:
    """Measure downstream elapsed time (privileged environment only)."""
    return Configured(
        "timed",
        {"label": label, "log_results": log_results, "threshold": threshold},
        Scope.PRIVILEGED,
    )


__all__ = [
    "Bare",
    "Configured",
    "Nested",
    "Spec",
    "SpecLike",
    "cacheable",
    "circuit_breaker",
    "debounce",
    "debug",
    "log_request",
    "parse_spec",
    "parse_specs",
    "rate_limit",
    "retryable",
    "run",
    "spec_args",
    "spec_name",
    "spec_scope",
    "throttle",
    "timed",
    "to_raw",
]
