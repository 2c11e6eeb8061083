"""Chain executor - resolve, build and run a pipeline against a context.

.. code-block:: text

    execute_chain(specs, ctx)
      ├── parse specs
      ├── SpecResolver.resolve_all(specs, ctx.scope)   (awaits registry readiness)
      ├── build_chain(bound steps)
      ├── await chain(ctx)                               → Outcome
      └── ctx.seal()                                     (always)

    run_nested(specs, ctx)    same, against the caller's context, no seal

Every invocation binds ``execution_id``, ``subject`` and ``operation`` to
the structlog context, so logs from every step of the chain correlate.

Example:
    >>> from modelchain import ExecutionContext, execute_chain, throttle
    >>> ctx = ExecutionContext("list", "post", scope="restricted")
    >>> outcome = await execute_chain([throttle(0.5, default=[]), "fetch"], ctx)

Tags:
    modelchain, execution, executor, pipeline

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from modelchain.core.logging import LogContext, get_logger
from modelchain.execution.chain import BoundStep, build_chain
from modelchain.execution.context import ExecutionContext
from modelchain.execution.outcome import Outcome
from modelchain.execution.registry import StepRegistry, get_default_registry
from modelchain.execution.resolver import SpecResolver
from modelchain.execution.scope import Scope
from modelchain.execution.spec import SpecLike, parse_specs

logger = get_logger(__name__)


class ChainExecutor:
    """Runs spec pipelines.

    Args:
        registry: Registry to resolve against. ``None`` follows the global
            default registry, including after ``reset_default_registry()``.
    """

    def __init__(self, registry: StepRegistry | None = None):
        self._registry = registry

    @property
    def registry(self) -> StepRegistry:
        return self._registry or get_default_registry()

    @property
    def resolver(self) -> SpecResolver:
        return SpecResolver(self.registry, self)

    async def execute_chain(self, specs: Iterable[SpecLike], context: ExecutionContext) -> Outcome:
        """Run a pipeline to completion or short-circuit.

        Returns:
            ``Terminated(payload)`` if any step terminated, else ``Continue()``

        Raises:
            Whatever a step raised; the context is sealed either way.
        """
        if context.executor is None:
            context.executor = self

        parsed = parse_specs(specs)
        async with LogContext(
            execution_id=context.execution_id,
            subject=context.subject,
            operation=context.operation,
        ):
            try:
                outcome = await self._run(parsed, context)
            except Exception as e:
                logger.error(
                    "chain_failed",
                    scope=context.scope.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            finally:
                context.seal()

            logger.debug(
                "chain_completed",
                scope=context.scope.value,
                terminated=outcome.is_terminated(),
            )
        return outcome

    async def run_nested(self, specs: Iterable[SpecLike], context: ExecutionContext) -> Outcome:
        """Run a sub-pipeline against an in-flight context (not sealed)."""
        return await self._run(parse_specs(specs), context)

    async def resolve(self, name: str, scope: Scope | str, args: Any = None) -> BoundStep | None:
        """Resolve one step name for an environment (diagnostics)."""
        return await self.resolver.resolve(name, scope, args)

    async def _run(self, specs: tuple, context: ExecutionContext) -> Outcome:
        steps = await self.resolver.resolve_all(specs, context.scope)
        chain = build_chain(steps)
        logger.debug("chain_built", steps=chain.names)
        return await chain(context)


# === MODULE-LEVEL CONVENIENCE ===

_default_executor: ChainExecutor | None = None
_default_lock = threading.Lock()


def get_default_executor() -> ChainExecutor:
    """Executor bound to the global default registry."""
    global _default_executor
    with _default_lock:
        if _default_executor is None:
            _default_executor = ChainExecutor()
        return _default_executor


def reset_default_executor() -> None:
    """Drop the default executor (for testing)."""
    global _default_executor
    with _default_lock:
        _default_executor = None


async def execute_chain(
    specs: Iterable[SpecLike],
    context: ExecutionContext,
    registry: StepRegistry | None = None,
) -> Outcome:
    """Run a pipeline with the default executor (or one bound to ``registry``)."""
    executor = ChainExecutor(registry) if registry is not None else get_default_executor()
    return await executor.execute_chain(specs, context)


async def resolve(
    name: str,
    scope: Scope | str,
    args: Any = None,
    registry: StepRegistry | None = None,
) -> BoundStep | None:
    """Resolve one step name with the default executor."""
    executor = ChainExecutor(registry) if registry is not None else get_default_executor()
    return await executor.resolve(name, scope, args)


__all__ = [
    "ChainExecutor",
    "execute_chain",
    "get_default_executor",
    "reset_default_executor",
    "resolve",
]
