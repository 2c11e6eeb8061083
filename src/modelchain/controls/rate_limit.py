"""Rate limit - at most ``max_requests`` calls per key per fixed window.

The window opens on the first call for a key and lasts ``window`` seconds;
the first call after it has run out opens a fresh one. Every call counts,
including rejected ones. A call that takes the count past
``max_requests`` terminates the chain with a 429-style payload::

    {"status": 429, "code": "RATE_LIMIT_EXCEEDED",
     "message": "Too many requests. Try again in 3 seconds.", "retry_after": 3}

The key defaults to ``"<scope>:<subject>.<operation>"``; a
``key_generator(view)`` can partition further (per user, per tenant).
With ``skip_successful`` a call whose downstream completes gives its slot
back, so only failing calls use up the budget. A downstream exception
propagates unchanged and keeps its slot.

Example:
    >>> specs = [rate_limit(100, window=60, key_generator=lambda v: v.arguments["user"]), "fetch"]
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from modelchain.controls.state import ControlState, RateWindow, get_default_control_state
from modelchain.core.errors import InvalidConfigError
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import DualView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome

logger = get_logger(__name__)

EXCEEDED_CODE = "RATE_LIMIT_EXCEEDED"


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit settings.

    Attributes:
        max_requests: Calls accepted per window
        window: Window length in seconds
        key_generator: ``(view) -> str`` replacing the default key
        skip_successful: Give the slot back when downstream succeeds
    """

    max_requests: int = 100
    window: float = 60.0
    key_generator: Callable[[DualView], Any] | None = None
    skip_successful: bool = False

    @classmethod
    def from_args(cls, args: Any) -> RateLimitConfig:
        """Accept snake_case keys (camelCase and ``window_seconds`` too)."""
        args = args or {}
        if not isinstance(args, Mapping):
            raise InvalidConfigError("rate_limit", args, "rate_limit expects a mapping of options")

        def pick(*names: str, default: Any = None) -> Any:
            for name in names:
                if name in args:
                    return args[name]
            return default

        config = cls(
            max_requests=pick("max_requests", "maxRequests", default=100),
            window=pick("window", "window_seconds", "windowSeconds", default=60.0),
            key_generator=pick("key_generator", "keyGenerator"),
            skip_successful=pick("skip_successful", "skipSuccessful", default=False),
        )
        if isinstance(config.max_requests, bool) or not isinstance(config.max_requests, int) or config.max_requests < 1:
            raise InvalidConfigError("rate_limit.max_requests", config.max_requests)
        if isinstance(config.window, bool) or not isinstance(config.window, (int, float)) or config.window <= 0:
            raise InvalidConfigError(
                "rate_limit.window", config.window, "rate_limit needs a positive window in seconds"
            )
        if config.key_generator is not None and not callable(config.key_generator):
            raise InvalidConfigError("rate_limit.key_generator", config.key_generator, "key_generator must be callable")
        return config


def default_key(view: DualView) -> str:
    return f"{view.scope.value}:{view.key}"


def exceeded_payload(retry_after: float) -> dict[str, Any]:
    seconds = math.ceil(retry_after)
    return {
        "status": 429,
        "code": EXCEEDED_CODE,
        "message": f"Too many requests. Try again in {seconds} seconds.",
        "retry_after": seconds,
    }


def create_rate_limit(args: Any, state: ControlState | None = None):
    """Factory for the ``rate_limit`` step."""
    config = RateLimitConfig.from_args(args)

    async def rate_limit(view: DualView, call_next: Continuation) -> Outcome | None:
        st = state or get_default_control_state()
        key = str(config.key_generator(view)) if config.key_generator else default_key(view)

        with st.rate_limits.locked():
            now = st.now()
            record = st.rate_limits.get(key)
            if record is None or now > record.reset_at:
                record = RateWindow(count=0, reset_at=now + config.window)
                st.rate_limits.set(key, record)
            record.count += 1
            count = record.count
            remaining = max(0.0, record.reset_at - now)

        if count > config.max_requests:
            logger.warning(
                "rate_limit_exceeded",
                key=key,
                count=count,
                max_requests=config.max_requests,
                retry_after=remaining,
            )
            return view.terminate(exceeded_payload(remaining))

        logger.debug("rate_limit_accepted", key=key, count=count, max_requests=config.max_requests)
        outcome = await call_next()

        if config.skip_successful:
            with st.rate_limits.locked():
                # the window may have rolled over while downstream ran
                if st.rate_limits.get(key) is record:
                    record.count = max(0, record.count - 1)
        return outcome

    return rate_limit


__all__ = ["EXCEEDED_CODE", "RateLimitConfig", "create_rate_limit", "default_key", "exceeded_payload"]
