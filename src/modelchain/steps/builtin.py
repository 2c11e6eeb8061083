"""General purpose built-in steps.

    run          (dual)        downstream first, then ``action(ctx)``
    log_request  (dual)        request_started / request_finished around downstream
    debug        (dual)        debug-level trace of one operation, errors re-raised
    timed        (privileged)  elapsed time into ``state["__timing"][label]``
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Mapping
from typing import Any

from modelchain.core.errors import InvalidConfigError
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import DualView, PrivilegedView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome

logger = get_logger(__name__)

_LEVELS = ("debug", "info", "warning", "error")


def _options(args: Any, step: str) -> Mapping[str, Any]:
    if args is None:
        return {}
    if not isinstance(args, Mapping):
        raise InvalidConfigError(step, args, f"{step} expects a mapping of options, got {args!r}")
    return args


def create_run(args: Any):
    """Run ``action(view)`` (sync or async) after downstream completes.

    ``args`` is the action itself or ``{"action": action}``.
    """
    action = args.get("action") if isinstance(args, Mapping) else args
    if action is not None and not callable(action):
        raise InvalidConfigError("run.action", action, "run expects a callable action")

    async def run(view: DualView, call_next: Continuation) -> Outcome | None:
        outcome = await call_next()
        if action is None:
            return outcome
        try:
            result = action(view)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("run_action_failed", key=view.key, error=str(e), error_type=type(e).__name__)
            raise
        return outcome

    return run


def create_log_request(args: Any):
    options = _options(args, "log_request")
    level = str(options.get("level", options.get("logLevel", "debug"))).lower()
    if level not in _LEVELS:
        raise InvalidConfigError("log_request.level", level, f"log_request level must be one of {_LEVELS}")
    include_args = bool(options.get("include_args", options.get("includeArgs", True)))
    include_state = bool(options.get("include_state", options.get("includeState", False)))

    async def log_request(view: DualView, call_next: Continuation) -> Outcome | None:
        log = getattr(logger, level)
        fields: dict[str, Any] = {"key": view.key, "scope": view.scope.value}
        if include_args:
            fields["arguments"] = view.arguments
        if include_state:
            fields["state"] = view.state
        log("request_started", **fields)
        outcome = await call_next()
        log("request_finished", key=view.key, scope=view.scope.value, terminated=outcome.is_terminated())
        return outcome

    return log_request


def create_debug(args: Any):
    """Trace one operation at debug level.

    Options (camelCase accepted): ``log_args`` (default True) and
    ``log_state`` (default False) add the arguments and the state before
    and after downstream; ``log_timing`` (default True) adds the elapsed
    seconds. ``prefix`` tags every record. Errors are logged and re-raised.
    """
    options = _options(args, "debug")
    log_args = bool(options.get("log_args", options.get("logArgs", True)))
    log_state = bool(options.get("log_state", options.get("logState", False)))
    log_timing = bool(options.get("log_timing", options.get("logTiming", True)))
    prefix = str(options.get("prefix", "modelchain"))

    async def debug(view: DualView, call_next: Continuation) -> Outcome | None:
        log = logger.bind(prefix=prefix, key=view.key, scope=view.scope.value, execution_id=view.execution_id)
        start = time.perf_counter()
        fields: dict[str, Any] = {}
        if log_args:
            fields["arguments"] = dict(view.arguments)
        if log_state:
            fields["state"] = dict(view.state)
        log.debug("debug_started", **fields)
        try:
            outcome = await call_next()
        except Exception as e:
            log.debug(
                "debug_failed",
                error=str(e),
                error_type=type(e).__name__,
                elapsed=round(time.perf_counter() - start, 6),
            )
            raise
        fields = {"terminated": outcome.is_terminated()}
        if log_state:
            fields["state"] = dict(view.state)
        if log_timing:
            fields["elapsed"] = round(time.perf_counter() - start, 6)
        log.debug("debug_finished", **fields)
        return outcome

    return debug


def create_timed(args: Any):
    """Measure downstream elapsed time, recorded even when downstream fails."""
    options = _options(args, "timed")
    log_results = bool(options.get("log_results", options.get("logResults", True)))
    threshold = float(options.get("threshold") or 0.0)
    label_option: str | None = options.get("label")

    async def timed(view: PrivilegedView, call_next: Continuation) -> Outcome | None:
        label = label_option or view.key
        start = time.perf_counter()
        try:
            return await call_next()
        finally:
            end = time.perf_counter()
            elapsed = end - start
            view.state.setdefault("__timing", {})[label] = {
                "label": label,
                "elapsed": elapsed,
                "start_time": start,
                "end_time": end,
            }
            if log_results and (threshold == 0 or elapsed > threshold):
                logger.info("step_timed", label=label, elapsed=round(elapsed, 6))

    return timed


__all__ = ["create_debug", "create_log_request", "create_run", "create_timed"]
