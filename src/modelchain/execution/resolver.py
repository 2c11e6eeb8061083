"""Spec resolver - turn a spec list into bound steps for one environment.

For each entry, in declaration order:

.. code-block:: text

    Bare(name)                  lookup(name, scope) -> factory(None)
    Configured(name, args, s)   skipped unless s is dual or s == scope,
                                then lookup(name, scope) -> factory(args)
    Nested(name, args, kids)    synthetic step:
                                  privileged -> run kids as a sub-chain,
                                                then the main step
                                  restricted -> main step only

A name with no registry entry is logged as ``step_not_found`` and dropped;
the rest of the pipeline still resolves. A factory that raises aborts
resolution with ``StepFactoryError``.

Tags:
    modelchain, execution, resolver, registry

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from modelchain.core.errors import StepFactoryError
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import adapt
from modelchain.execution.chain import BoundStep, Continuation
from modelchain.execution.outcome import Outcome
from modelchain.execution.registry import StepRegistry
from modelchain.execution.scope import Scope
from modelchain.execution.spec import Bare, Configured, Nested, Spec, SpecLike, parse_specs

if TYPE_CHECKING:
    from modelchain.execution.context import ExecutionContext
    from modelchain.execution.executor import ChainExecutor

logger = get_logger(__name__)


class SpecResolver:
    """Resolves specs against a registry.

    Args:
        registry: Where step factories are looked up
        executor: Runs the children sub-chains of nested specs
    """

    def __init__(self, registry: StepRegistry, executor: ChainExecutor):
        self.registry = registry
        self.executor = executor

    async def resolve_all(self, specs: Iterable[SpecLike], scope: Scope | str) -> list[BoundStep]:
        """Resolve a whole pipeline into bound steps, in order."""
        env = Scope.environment(scope)
        await self.registry.ensure_ready()

        bound: list[BoundStep] = []
        for spec in parse_specs(specs):
            step = self._resolve_spec(spec, env)
            if step is not None:
                bound.append(step)
        return bound

    async def resolve(self, name: str, scope: Scope | str, args: Any = None) -> BoundStep | None:
        """Resolve a single name (diagnostics)."""
        env = Scope.environment(scope)
        await self.registry.ensure_ready()
        return self._bind(name, env, args)

    def _resolve_spec(self, spec: Spec, scope: Scope) -> BoundStep | None:
        if isinstance(spec, Bare):
            return self._bind(spec.name, scope, None)

        if isinstance(spec, Configured):
            if spec.scope is not Scope.DUAL and spec.scope is not scope:
                logger.debug(
                    "step_skipped_scope",
                    step=spec.name,
                    step_scope=spec.scope.value,
                    scope=scope.value,
                )
                return None
            return self._bind(spec.name, scope, spec.args)

        return self._nested(spec, scope)

    def _bind(self, name: str, scope: Scope, args: Any) -> BoundStep | None:
        entry = self.registry.lookup(name, scope)
        if entry is None:
            logger.warning("step_not_found", step=name, scope=scope.value)
            return None
        try:
            step = entry.factory(args)
        except Exception as e:
            raise StepFactoryError(name, e).with_context(scope=scope.value) from e
        return adapt(step, entry.scope, name)

    def _nested(self, spec: Nested, scope: Scope) -> BoundStep:
        main = self._bind(spec.name, scope, spec.args)
        children = spec.children
        executor = self.executor

        async def nested(ctx: ExecutionContext, call_next: Continuation) -> Outcome | None:
            if ctx.scope is Scope.PRIVILEGED and children:
                logger.debug("nested_children_started", step=spec.name, count=len(children), key=ctx.key)
                await executor.run_nested(children, ctx)
            if main is None:
                return await call_next()
            return await main(ctx, call_next)

        return BoundStep(spec.name, nested, Scope.DUAL)


__all__ = ["SpecResolver"]
