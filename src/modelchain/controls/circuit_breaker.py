"""Circuit breaker step for fault tolerance.

Fails fast for a ``subject.operation`` key whose downstream keeps failing.

States:
    CLOSED: Normal operation, attempts pass through
    OPEN: Failing fast until ``reset_timeout`` has elapsed
    HALF_OPEN: Trialing, one attempt in flight at a time (concurrent calls
        are rejected as if OPEN); ``success_threshold`` successes close the
        circuit, any failure reopens it

Every attempt is raced against ``timeout``. A timed-out attempt counts as
a failure and raises ``StepTimeoutError``; the downstream task itself is
left to finish and its result is disregarded.

While OPEN, or while a half-open trial call is in flight, a configured
``fallback(view)`` (sync or async) answers instead: a non-None result
terminates the chain with it. Without a fallback the call raises
``CircuitOpenError``.

Example:
    >>> specs = [circuit_breaker(failure_threshold=3, reset_timeout=30, fallback=lambda v: []), "fetch"]
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from modelchain.controls.state import CircuitRecord, CircuitState, ControlState, get_default_control_state
from modelchain.core.errors import CircuitOpenError, InvalidConfigError, StepTimeoutError
from modelchain.core.logging import get_logger
from modelchain.core.settings import get_settings
from modelchain.execution.adapter import DualView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome

logger = get_logger(__name__)


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Circuit breaker settings.

    Attributes:
        failure_threshold: Consecutive failures before opening
        success_threshold: Half-open successes needed to close
        timeout: Seconds an attempt may take
        reset_timeout: Seconds to stay open before trialing
        fallback: Answer used while open
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: float = 10.0
    reset_timeout: float = 30.0
    fallback: Callable[[DualView], Any] | None = None

    @classmethod
    def from_args(cls, args: Any) -> CircuitBreakerConfig:
        """Accept snake_case keys (camelCase accepted too)."""
        args = args or {}
        if not isinstance(args, Mapping):
            raise InvalidConfigError("circuit_breaker", args, "circuit_breaker expects a mapping of options")

        def pick(name: str, camel: str, default: Any) -> Any:
            if name in args:
                return args[name]
            return args.get(camel, default)

        config = cls(
            failure_threshold=pick("failure_threshold", "failureThreshold", 5),
            success_threshold=pick("success_threshold", "successThreshold", 2),
            timeout=pick("timeout", "timeout", get_settings().default_circuit_timeout),
            reset_timeout=pick("reset_timeout", "resetTimeout", 30.0),
            fallback=args.get("fallback"),
        )
        for key in ("failure_threshold", "success_threshold"):
            value = getattr(config, key)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidConfigError(f"circuit_breaker.{key}", value)
        for key in ("timeout", "reset_timeout"):
            value = getattr(config, key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise InvalidConfigError(f"circuit_breaker.{key}", value)
        if config.fallback is not None and not callable(config.fallback):
            raise InvalidConfigError("circuit_breaker.fallback", config.fallback, "fallback must be callable")
        return config


def _transition(record: CircuitRecord, phase: CircuitState, key: str) -> None:
    old = record.phase
    record.phase = phase
    if phase is CircuitState.HALF_OPEN:
        record.success_count = 0
    logger.info("circuit_state_changed", key=key, old_state=old.value, new_state=phase.value)


def _record_success(record: CircuitRecord, config: CircuitBreakerConfig, key: str) -> None:
    record.failure_count = 0
    if record.phase is CircuitState.HALF_OPEN:
        record.success_count += 1
        if record.success_count >= config.success_threshold:
            _transition(record, CircuitState.CLOSED, key)
            record.success_count = 0


def _record_failure(record: CircuitRecord, config: CircuitBreakerConfig, key: str, now: float) -> None:
    record.failure_count += 1
    record.success_count = 0
    if record.phase is CircuitState.HALF_OPEN or record.failure_count >= config.failure_threshold:
        record.next_attempt_at = now + config.reset_timeout
        if record.phase is not CircuitState.OPEN:
            _transition(record, CircuitState.OPEN, key)


def _consume_result(task: asyncio.Task[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("circuit_disregarded_failure", error=str(task.exception()))


async def _attempt(call_next: Continuation, timeout: float, key: str) -> Outcome:
    task = asyncio.ensure_future(call_next())
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError:
        task.add_done_callback(_consume_result)
        raise StepTimeoutError(timeout, key) from None


def create_circuit_breaker(args: Any, state: ControlState | None = None):
    """Factory for the ``circuit_breaker`` step."""
    config = CircuitBreakerConfig.from_args(args)

    async def circuit_breaker(view: DualView, call_next: Continuation) -> Outcome | None:
        st = state or get_default_control_state()
        key = view.key

        with st.circuits.locked():
            record = st.circuits.get_or_create(key, CircuitRecord)
            now = st.now()
            rejected = trialing = False
            if record.phase is CircuitState.OPEN:
                if now >= record.next_attempt_at:
                    _transition(record, CircuitState.HALF_OPEN, key)
                else:
                    rejected = True
            if record.phase is CircuitState.HALF_OPEN and not rejected:
                # one trial call at a time
                if record.trial_in_flight:
                    rejected = True
                else:
                    record.trial_in_flight = trialing = True
            phase = record.phase
            retry_after = max(0.0, record.next_attempt_at - now)

        if rejected:
            if config.fallback is not None:
                result = config.fallback(view)
                if inspect.isawaitable(result):
                    result = await result
                logger.debug("circuit_fallback", key=key, has_result=result is not None)
                if result is not None:
                    return view.terminate(result)
                return view.outcome
            raise CircuitOpenError(
                f"[circuit_breaker] circuit for {key} is {phase.value}",
                retry_after=retry_after,
            ).with_context(
                subject=view.subject,
                operation=view.operation,
                step="circuit_breaker",
                execution_id=view.execution_id,
            )

        try:
            outcome = await _attempt(call_next, config.timeout, key)
        except Exception as e:
            with st.circuits.locked():
                _record_failure(record, config, key, st.now())
            logger.debug("circuit_attempt_failed", key=key, failures=record.failure_count, error=str(e))
            raise
        finally:
            if trialing:
                with st.circuits.locked():
                    record.trial_in_flight = False

        with st.circuits.locked():
            _record_success(record, config, key)
        return outcome

    return circuit_breaker


__all__ = ["CircuitBreakerConfig", "create_circuit_breaker"]
