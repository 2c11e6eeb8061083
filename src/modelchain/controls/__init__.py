"""Modelchain Controls -- control-flow steps registered in the dual table.

Architecture::

    state.py            ControlState: keyed stores + clock
    throttle.py         throttle(wait, default)
    debounce.py         debounce(wait)
    retry.py            retryable(retries)
    cache.py            cacheable(ttl, children)
    circuit_breaker.py  circuit_breaker(failure_threshold, ..., fallback)
    rate_limit.py       rate_limit(max_requests, window, key_generator)

``register_controls`` is queued as a loader on the default registry.
Pass a ``ControlState`` to isolate the keyed state (tests, multi-tenant).
"""

from __future__ import annotations

from functools import partial

from modelchain.controls.cache import create_cacheable
from modelchain.controls.circuit_breaker import CircuitBreakerConfig, create_circuit_breaker
from modelchain.controls.debounce import create_debounce
from modelchain.controls.rate_limit import RateLimitConfig, create_rate_limit
from modelchain.controls.retry import ImmediateRetry, RetryContext, RetryStrategy, create_retryable
from modelchain.controls.state import (
    CircuitState,
    ControlState,
    get_default_control_state,
    reset_default_control_state,
)
from modelchain.controls.throttle import ThrottleConfig, create_throttle
from modelchain.execution.registry import StepRegistry
from modelchain.execution.scope import Scope


def register_controls(registry: StepRegistry, state: ControlState | None = None) -> None:
    """Register every control step as a dual step."""
    registry.register(
        "throttle",
        partial(create_throttle, state=state),
        Scope.DUAL,
        "Reject calls closer than `wait` seconds apart",
    )
    registry.register(
        "debounce",
        partial(create_debounce, state=state),
        Scope.DUAL,
        "Collapse bursts into one downstream execution",
    )
    registry.register("retryable", create_retryable, Scope.DUAL, "Re-attempt downstream on failure")
    registry.register(
        "cacheable",
        partial(create_cacheable, state=state),
        Scope.DUAL,
        "Cache the terminal payload for `ttl` seconds",
    )
    registry.register(
        "circuit_breaker",
        partial(create_circuit_breaker, state=state),
        Scope.DUAL,
        "Fail fast after repeated downstream failures",
    )
    registry.register(
        "rate_limit",
        partial(create_rate_limit, state=state),
        Scope.DUAL,
        "Accept at most `max_requests` calls per `window` seconds",
    )


__all__ = [
    "CircuitBreakerConfig",
    "CircuitState",
    "ControlState",
    "ImmediateRetry",
    "RateLimitConfig",
    "RetryContext",
    "RetryStrategy",
    "ThrottleConfig",
    "create_cacheable",
    "create_circuit_breaker",
    "create_debounce",
    "create_rate_limit",
    "create_retryable",
    "create_throttle",
    "get_default_control_state",
    "register_controls",
    "reset_default_control_state",
]
