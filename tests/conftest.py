"""
Shared pytest fixtures and configuration for modelchain tests.

This module provides:
- Global-state cleanup fixtures for test isolation (registry, control
  state, settings, executor)
- A controllable clock for deterministic timing tests
- A registry pre-loaded with the built-in steps plus simple recording steps

Usage:
    Fixtures are auto-discovered by pytest.

    async def test_something(registry, fake_clock):
        ...
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

# Ensure modelchain package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Module loggers must follow each test's structlog configuration
os.environ.setdefault("MODELCHAIN_LOG_CACHE_LOGGERS", "false")

from modelchain.controls import ControlState, register_controls, reset_default_control_state
from modelchain.core.settings import reset_settings
from modelchain.execution.context import ExecutionContext
from modelchain.execution.executor import ChainExecutor, reset_default_executor
from modelchain.execution.registry import StepRegistry, reset_default_registry
from modelchain.steps import register_builtin_steps


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Global State Cleanup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_global_state() -> Generator[None, None, None]:
    """
    Reset every process-wide default before and after each test.

    Covers the default registry, the default control state, the default
    executor, the cached settings and the structlog configuration.
    """
    _reset_globals()
    yield
    _reset_globals()


def _reset_globals() -> None:
    reset_default_registry()
    reset_default_control_state()
    reset_settings()
    reset_default_executor()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def control_state(fake_clock: FakeClock) -> ControlState:
    """Isolated control state driven by ``fake_clock``."""
    return ControlState(max_keys=100, clock=fake_clock)


# =============================================================================
# Registries
# =============================================================================


def make_recorder(log: list[str], label: str, *, terminate_with: Any = None):
    """Factory for a recording step that records before/after around downstream."""

    def factory(args: Any):
        async def step(view, call_next):
            log.append(f"{label}:before")
            if terminate_with is not None:
                view.terminate(terminate_with)
                return None
            outcome = await call_next()
            log.append(f"{label}:after")
            return outcome

        return step

    return factory


@pytest.fixture
def registry(control_state: ControlState) -> StepRegistry:
    """Registry with built-in controls (bound to ``control_state``) and steps."""
    reg = StepRegistry()
    register_controls(reg, state=control_state)
    register_builtin_steps(reg)
    return reg


@pytest.fixture
def environment() -> dict[str, Any]:
    """Stand-in environment handle for privileged chains."""
    return {"event": "request", "session": {"user": "ada"}}


@pytest.fixture
def recorder():
    """Build recording-step factories: ``recorder(log, "a")``."""
    return make_recorder


@pytest.fixture
def invoke(registry: StepRegistry):
    """Run specs against ``registry`` in a fresh ``post.list`` context."""
    executor = ChainExecutor(registry)

    async def _invoke(specs, arguments=None, scope="restricted", environment_handle=None):
        ctx = ExecutionContext(
            "list",
            "post",
            scope=scope,
            arguments=arguments or {},
            environment_handle=environment_handle,
        )
        return await executor.execute_chain(specs, ctx)

    return _invoke
