"""Chain builder - onion composition of bound steps.

Given bound steps ``s0..s(n-1)``, the chain is ``f(0)`` where

    f(i) = ctx -> s_i(ctx, Continuation(f(i + 1)))
    f(n) = ctx -> ctx.outcome

so the "before" section of every step runs in declaration order and the
"after" sections unwind in reverse order. A step that returns without
awaiting its continuation short-circuits everything after it.

.. code-block:: text

    s0 before ─▶ s1 before ─▶ s2 before ─▶ (end)
    s0 after  ◀─ s1 after  ◀─ s2 after  ◀──┘

Tags:
    modelchain, execution, chain, onion, middleware

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from modelchain.core.errors import CompositionError
from modelchain.core.logging import get_logger
from modelchain.execution.outcome import Outcome, Terminated
from modelchain.execution.scope import Scope

if TYPE_CHECKING:
    from modelchain.execution.context import ExecutionContext

logger = get_logger(__name__)


class Continuation:
    """One-shot handle on "the rest of the chain".

    Awaiting the continuation runs every downstream step and returns the
    downstream ``Outcome``. It may be invoked at most once.
    """

    __slots__ = ("_runner", "_called", "step")

    def __init__(self, runner: Callable[[], Awaitable[Outcome]], step: str | None = None):
        self._runner = runner
        self._called = False
        self.step = step

    @property
    def called(self) -> bool:
        return self._called

    def renew(self) -> Continuation:
        """A fresh one-shot continuation over the same downstream chain.

        Only for steps that re-attempt downstream (``retryable``); every
        renewed handle is itself one-shot.
        """
        return Continuation(self._runner, self.step)

    async def __call__(self) -> Outcome:
        if self._called:
            error = CompositionError("next() called multiple times")
            if self.step:
                error.with_context(step=self.step)
            raise error
        self._called = True
        return await self._runner()


StepFn = Callable[["ExecutionContext", Continuation], Awaitable[Outcome | None]]


@dataclass(frozen=True)
class BoundStep:
    """A resolved step, ready to be placed in a chain.

    Attributes:
        name: Registered name (for logs and inspection)
        fn: ``async (ctx, call_next) -> Outcome | None``
        scope: Scope the step was registered for
    """

    name: str
    fn: StepFn
    scope: Scope = Scope.DUAL

    async def __call__(self, ctx: ExecutionContext, call_next: Continuation) -> Outcome | None:
        return await self.fn(ctx, call_next)


def step_label(step: Any) -> str:
    """Display name of a step callable."""
    name = getattr(step, "name", None)
    if isinstance(name, str):
        return name
    return getattr(step, "__qualname__", None) or repr(step)


def _apply(ctx: ExecutionContext, result: Any) -> Outcome:
    if isinstance(result, Terminated):
        ctx.terminate(result.payload)
    return ctx.outcome


class Chain:
    """Executable onion chain built by ``build_chain``."""

    def __init__(self, steps: Iterable[StepFn]):
        self._steps: tuple[StepFn, ...] = tuple(steps)

    @property
    def steps(self) -> tuple[StepFn, ...]:
        return self._steps

    @property
    def names(self) -> list[str]:
        return [step_label(s) for s in self._steps]

    def __len__(self) -> int:
        return len(self._steps)

    async def __call__(self, ctx: ExecutionContext) -> Outcome:
        return await self._dispatch(ctx, 0)

    async def _dispatch(self, ctx: ExecutionContext, index: int) -> Outcome:
        if index >= len(self._steps):
            return ctx.outcome

        step = self._steps[index]
        call_next = Continuation(partial(self._dispatch, ctx, index + 1), step=step_label(step))
        result = await step(ctx, call_next)

        if not call_next.called and index + 1 < len(self._steps):
            logger.debug(
                "chain_short_circuited",
                step=call_next.step,
                skipped=len(self._steps) - index - 1,
                key=ctx.key,
            )
        return _apply(ctx, result)


def build_chain(steps: Sequence[StepFn]) -> Chain:
    """Compose bound steps into a single executable chain."""
    return Chain(steps)


def compose(*steps: StepFn, name: str = "composed") -> BoundStep:
    """Merge several steps into one bound step.

    The merged step runs ``steps`` as an inner onion and then continues
    with its own continuation. Every inner continuation is one-shot.

    Example:
        >>> guarded = compose(auth_step, audit_step, name="guarded")
        >>> chain = build_chain([guarded, persist_step])
    """

    async def composed(ctx: ExecutionContext, call_next: Continuation) -> Outcome:
        async def dispatch(index: int) -> Outcome:
            if index == len(steps):
                return await call_next()
            step = steps[index]
            inner = Continuation(partial(dispatch, index + 1), step=step_label(step))
            return _apply(ctx, await step(ctx, inner))

        return await dispatch(0)

    return BoundStep(name, composed)


__all__ = [
    "BoundStep",
    "Chain",
    "Continuation",
    "StepFn",
    "build_chain",
    "compose",
    "step_label",
]
