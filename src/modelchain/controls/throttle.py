"""Throttle - at most one accepted invocation per key per window.

Key is ``subject.operation``. A call arriving less than ``wait`` seconds
after the last *accepted* call is rejected: it terminates the chain with
``default`` when one is configured, otherwise raises
``RateLimitExceeded`` with the remaining window as ``retry_after``.
Rejected calls do not move the window.

Example:
    >>> specs = [throttle(0.5, default=[]), "fetch_posts"]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from modelchain.controls.state import ControlState, get_default_control_state
from modelchain.core.errors import InvalidConfigError, RateLimitExceeded
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import DualView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome

logger = get_logger(__name__)

_NO_DEFAULT: Any = object()


@dataclass(frozen=True)
class ThrottleConfig:
    wait: float
    default: Any = _NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT

    @classmethod
    def from_args(cls, args: Any) -> ThrottleConfig:
        """Accept ``0.5`` or ``{"wait": 0.5, "default": ...}`` (``defaultValue`` too)."""
        if isinstance(args, Mapping):
            wait = args.get("wait")
            if "default" in args:
                default = args["default"]
            elif "defaultValue" in args:
                default = args["defaultValue"]
            else:
                default = _NO_DEFAULT
        else:
            wait, default = args, _NO_DEFAULT
        if isinstance(wait, bool) or not isinstance(wait, (int, float)) or wait < 0:
            raise InvalidConfigError("throttle.wait", wait, f"throttle needs a non-negative 'wait' in seconds, got {wait!r}")
        return cls(float(wait), default)


def create_throttle(args: Any, state: ControlState | None = None):
    """Factory for the ``throttle`` step."""
    config = ThrottleConfig.from_args(args)

    async def throttle(view: DualView, call_next: Continuation) -> Outcome | None:
        st = state or get_default_control_state()
        key = view.key

        with st.throttle.locked():
            now = st.now()
            last = st.throttle.get(key)
            elapsed = None if last is None else now - last
            rejected = elapsed is not None and elapsed < config.wait
            if not rejected:
                st.throttle.set(key, now)

        if rejected:
            remaining = config.wait - elapsed
            logger.debug("throttle_rejected", key=key, retry_after=remaining)
            if config.has_default:
                return view.terminate(config.default)
            raise RateLimitExceeded(
                f"[throttle] {key} invoked too frequently",
                retry_after=remaining,
            ).with_context(
                subject=view.subject,
                operation=view.operation,
                step="throttle",
                execution_id=view.execution_id,
            )

        return await call_next()

    return throttle


__all__ = ["ThrottleConfig", "create_throttle"]
