"""Modelchain Steps -- general purpose built-in steps.

``register_builtin_steps`` is queued as a loader on the default registry.
"""

from __future__ import annotations

from modelchain.execution.registry import StepRegistry
from modelchain.execution.scope import Scope
from modelchain.steps.builtin import create_debug, create_log_request, create_run, create_timed


def register_builtin_steps(registry: StepRegistry) -> None:
    """Register ``run``, ``log_request``, ``debug`` and ``timed``."""
    registry.register("run", create_run, Scope.DUAL)
    registry.register("log_request", create_log_request, Scope.DUAL, "Log the start and end of the operation")
    registry.register("debug", create_debug, Scope.DUAL, "Trace arguments, state and timing at debug level")
    registry.register("timed", create_timed, Scope.PRIVILEGED)


__all__ = ["create_debug", "create_log_request", "create_run", "create_timed", "register_builtin_steps"]
