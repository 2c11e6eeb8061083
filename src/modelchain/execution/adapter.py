"""Environment adapter - scope-specific views over the unified context.

A registered step receives a *view* of the execution context rather than
the context itself, so it only sees the fields valid for its scope:

.. code-block:: text

    PrivilegedView   operation subject arguments state terminate  environment_handle
    RestrictedView   operation subject arguments state terminate
    DualView         operation subject arguments state terminate  scope environment_handle?
                     run_nested(specs)

Views are thin wrappers. ``arguments``, ``state`` and ``terminate`` are the
context's own objects, so every mutation made through a view is visible to
the rest of the chain.

``adapt(step, scope)`` turns a view-taking step into a ``BoundStep`` that
accepts the full context, and refuses to run a scope-specific step in the
other environment.

Tags:
    modelchain, execution, adapter, scope, capability

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any

from modelchain.core.errors import MissingEnvironmentError, ScopeViolationError
from modelchain.execution.chain import BoundStep, Continuation, step_label
from modelchain.execution.outcome import Outcome, Terminated
from modelchain.execution.scope import Scope

if TYPE_CHECKING:
    from modelchain.execution.context import ExecutionContext
    from modelchain.execution.spec import SpecLike


class _ContextView:
    """Fields shared by every view."""

    __slots__ = ("_ctx",)

    def __init__(self, ctx: ExecutionContext):
        self._ctx = ctx

    @property
    def operation(self) -> str:
        return self._ctx.operation

    @property
    def subject(self) -> str:
        return self._ctx.subject

    @property
    def key(self) -> str:
        return self._ctx.key

    @property
    def execution_id(self) -> str:
        return self._ctx.execution_id

    @property
    def arguments(self) -> dict[str, Any]:
        return self._ctx.arguments

    @property
    def state(self) -> dict[str, Any]:
        return self._ctx.state

    @property
    def outcome(self) -> Outcome:
        return self._ctx.outcome

    @property
    def is_terminated(self) -> bool:
        return self._ctx.is_terminated

    @property
    def payload(self) -> Any:
        return self._ctx.payload

    def terminate(self, payload: Any = None) -> Terminated:
        return self._ctx.terminate(payload)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._ctx.key!r}, execution_id={self._ctx.execution_id!r})"


class PrivilegedView(_ContextView):
    """View for privileged steps. Always carries the environment handle."""

    __slots__ = ()

    @property
    def environment_handle(self) -> Any:
        return self._ctx.environment_handle


class RestrictedView(_ContextView):
    """View for restricted steps. Has no ``environment_handle`` attribute."""

    __slots__ = ()


class DualView(_ContextView):
    """View for dual steps, which branch on ``scope``."""

    __slots__ = ()

    @property
    def scope(self) -> Scope:
        return self._ctx.scope

    @property
    def environment_handle(self) -> Any | None:
        return self._ctx.environment_handle

    async def run_nested(self, specs: Iterable[SpecLike]) -> Outcome:
        """Run a sub-pipeline against the same context."""
        executor = self._ctx.executor
        if executor is None:
            from modelchain.execution.executor import get_default_executor

            executor = get_default_executor()
        return await executor.run_nested(specs, self._ctx)


StepView = PrivilegedView | RestrictedView | DualView

ViewStep = Callable[[Any, Continuation], Awaitable[Outcome | None]]


def make_view(ctx: ExecutionContext, scope: Scope, step: str | None = None) -> StepView:
    """Build the view a step registered for ``scope`` receives.

    Raises:
        MissingEnvironmentError: Privileged view without an environment handle
    """
    if scope is Scope.PRIVILEGED:
        if ctx.environment_handle is None:
            raise MissingEnvironmentError(step=step).with_context(
                subject=ctx.subject,
                operation=ctx.operation,
                execution_id=ctx.execution_id,
            )
        return PrivilegedView(ctx)
    if scope is Scope.RESTRICTED:
        return RestrictedView(ctx)
    return DualView(ctx)


def adapt(step: ViewStep, scope: Scope | str, name: str | None = None) -> BoundStep:
    """Wrap a view-taking step into a context-taking ``BoundStep``.

    Raises (when the bound step runs):
        ScopeViolationError: A privileged step in a restricted chain or vice versa
        MissingEnvironmentError: A privileged step without an environment handle
    """
    step_scope = Scope.parse(scope)
    label = name or step_label(step)

    async def bound(ctx: ExecutionContext, call_next: Continuation) -> Outcome | None:
        if step_scope is not Scope.DUAL and step_scope is not ctx.scope:
            raise ScopeViolationError(label, step_scope.value, ctx.scope.value).with_context(
                subject=ctx.subject,
                operation=ctx.operation,
                execution_id=ctx.execution_id,
            )
        return await step(make_view(ctx, step_scope, label), call_next)

    return BoundStep(label, bound, step_scope)


__all__ = [
    "DualView",
    "PrivilegedView",
    "RestrictedView",
    "StepView",
    "ViewStep",
    "adapt",
    "make_view",
]
