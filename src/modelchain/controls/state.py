"""Process-wide keyed state for the control-flow steps.

.. code-block:: text

    ControlState
    ├── throttle    KeyedStore[float]          last accepted time per key
    ├── cache       KeyedStore[CacheEntry]     payload + expiry per key/args
    ├── circuits    KeyedStore[CircuitRecord]  breaker phase per key
    ├── rate_limits KeyedStore[RateWindow]     request count + window end per key
    ├── debounce    dict[str, DebounceEntry]   pending flushes (never evicted)
    └── clock       () -> float                time.monotonic unless injected

Records hold timestamps, counters and cached payloads only. The pending
debounce entries hold contexts until their flush, then are dropped.

Tags:
    modelchain, controls, state, keyed-state
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from modelchain.core.keyed_state import KeyedStore
from modelchain.core.settings import get_settings

if TYPE_CHECKING:
    from modelchain.execution.adapter import DualView
    from modelchain.execution.chain import Continuation
    from modelchain.execution.outcome import Outcome


class CircuitState(str, Enum):
    """Circuit breaker phases."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting requests
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitRecord:
    """Breaker bookkeeping for one key."""

    failure_count: int = 0
    success_count: int = 0
    phase: CircuitState = CircuitState.CLOSED
    next_attempt_at: float = 0.0
    trial_in_flight: bool = False


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


@dataclass
class RateWindow:
    """Requests counted in the current fixed window."""

    count: int
    reset_at: float


@dataclass
class DebounceEntry:
    """A pending debounced execution.

    ``view`` is the first caller's context view; later callers copy their
    arguments into it and replace ``continuation`` with their own.
    """

    view: DualView
    continuation: Continuation
    waiters: list[asyncio.Future[Outcome]] = field(default_factory=list)
    timer: asyncio.TimerHandle | None = None
    flush_task: asyncio.Task[None] | None = None


class ControlState:
    """Keyed stores shared by every control step bound to this instance.

    Args:
        max_keys: LRU bound per store (default: ``state_max_keys`` setting)
        clock: Monotonic clock in seconds (default: ``time.monotonic``)
    """

    def __init__(self, max_keys: int | None = None, clock: Callable[[], float] | None = None):
        max_keys = max_keys or get_settings().state_max_keys
        self.clock: Callable[[], float] = clock or time.monotonic
        self.throttle: KeyedStore[float] = KeyedStore("throttle", max_keys=max_keys)
        self.cache: KeyedStore[CacheEntry] = KeyedStore("cache", max_keys=max_keys)
        self.circuits: KeyedStore[CircuitRecord] = KeyedStore("circuit_breaker", max_keys=max_keys)
        self.rate_limits: KeyedStore[RateWindow] = KeyedStore("rate_limit", max_keys=max_keys)
        self.debounce: dict[str, DebounceEntry] = {}
        self.debounce_lock = threading.Lock()

    def now(self) -> float:
        return self.clock()

    def clear(self) -> None:
        """Drop every record (pending debounce timers are cancelled)."""
        self.throttle.clear()
        self.cache.clear()
        self.circuits.clear()
        self.rate_limits.clear()
        with self.debounce_lock:
            for entry in self.debounce.values():
                if entry.timer is not None:
                    entry.timer.cancel()
            self.debounce.clear()


_default_state: ControlState | None = None
_default_lock = threading.Lock()


def get_default_control_state() -> ControlState:
    """The process-wide control state (created lazily)."""
    global _default_state
    with _default_lock:
        if _default_state is None:
            _default_state = ControlState()
        return _default_state


def reset_default_control_state() -> None:
    """Drop the process-wide control state (for testing)."""
    global _default_state
    with _default_lock:
        if _default_state is not None:
            _default_state.clear()
        _default_state = None


__all__ = [
    "CacheEntry",
    "CircuitRecord",
    "CircuitState",
    "ControlState",
    "DebounceEntry",
    "RateWindow",
    "get_default_control_state",
    "reset_default_control_state",
]
