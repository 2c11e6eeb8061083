"""Debounce - collapse a burst of calls into one downstream execution.

Key is ``subject.operation``. Every call inside the sliding ``wait``
window cancels the pending timer and reschedules it; when the timer
finally fires, the *latest* caller's continuation runs exactly once and
every caller of the burst receives the same outcome:

.. code-block:: text

    t=0.00  call A ──┐
    t=0.01  call B ──┤  timer reset on each call
    t=0.02  call C ──┤
    t=0.07           └─▶ C's downstream runs once
                         A, B, C all return its outcome
                         (a raised error is raised in A, B and C)

The last caller's arguments are also copied into the first caller's
context, which is held by the pending entry.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from modelchain.controls.state import ControlState, DebounceEntry, get_default_control_state
from modelchain.core.errors import InvalidConfigError
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import DualView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome

logger = get_logger(__name__)


def _parse_wait(args: Any) -> float:
    wait = args.get("wait") if isinstance(args, Mapping) else args
    if isinstance(wait, bool) or not isinstance(wait, (int, float)) or wait < 0:
        raise InvalidConfigError("debounce.wait", wait, f"debounce needs a non-negative 'wait' in seconds, got {wait!r}")
    return float(wait)


def create_debounce(args: Any, state: ControlState | None = None):
    """Factory for the ``debounce`` step."""
    wait = _parse_wait(args)

    async def debounce(view: DualView, call_next: Continuation) -> Outcome | None:
        st = state or get_default_control_state()
        key = view.key
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[Outcome] = loop.create_future()

        with st.debounce_lock:
            entry = st.debounce.get(key)
            if entry is None:
                entry = DebounceEntry(view=view, continuation=call_next)
                st.debounce[key] = entry
            else:
                if entry.timer is not None:
                    entry.timer.cancel()
                if entry.view.arguments is not view.arguments:
                    entry.view.arguments.clear()
                    entry.view.arguments.update(view.arguments)
                entry.continuation = call_next
            entry.waiters.append(waiter)
            entry.timer = loop.call_later(wait, _fire, loop, st, key, entry)
            pending = len(entry.waiters)

        logger.debug("debounce_scheduled", key=key, wait=wait, waiters=pending)
        outcome = await waiter
        if outcome.is_terminated():
            return view.terminate(outcome.payload)
        return view.outcome

    return debounce


def _fire(loop: asyncio.AbstractEventLoop, st: ControlState, key: str, entry: DebounceEntry) -> None:
    with st.debounce_lock:
        if st.debounce.get(key) is entry:
            del st.debounce[key]
    entry.flush_task = loop.create_task(_flush(key, entry))


async def _flush(key: str, entry: DebounceEntry) -> None:
    try:
        outcome = await entry.continuation()
    except asyncio.CancelledError:
        for waiter in entry.waiters:
            waiter.cancel()
        raise
    except Exception as e:
        logger.debug("debounce_failed", key=key, waiters=len(entry.waiters), error=str(e))
        for waiter in entry.waiters:
            if not waiter.done():
                waiter.set_exception(e)
        return

    logger.debug("debounce_flushed", key=key, waiters=len(entry.waiters), terminated=outcome.is_terminated())
    for waiter in entry.waiters:
        if not waiter.done():
            waiter.set_result(outcome)


__all__ = ["create_debounce"]
