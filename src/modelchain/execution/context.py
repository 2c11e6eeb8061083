"""Execution context shared by every step of one chain invocation.

.. code-block:: text

    ExecutionContext
    ├── .operation / .subject   → what is being executed ("create" on "post")
    ├── .arguments              → operation input (mutable, shared)
    ├── .state                  → scratch space between steps (mutable, shared)
    ├── .scope                  → privileged | restricted
    ├── .environment_handle     → privileged resources (never in restricted)
    ├── .outcome                → CONTINUE until terminate() is called
    ├── .key                    → "subject.operation"
    └── .terminate(payload)     → short-circuit with a single result

One context is created per invocation and passed by reference through the
whole chain, including nested sub-chains. Once the invocation returns the
executor *seals* the context; a step that kept a reference and calls
``terminate`` afterwards is a composition defect.

Tags:
    modelchain, execution, context, short-circuit

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from modelchain.core.errors import CompositionError
from modelchain.core.logging import get_logger
from modelchain.execution.outcome import CONTINUE, Outcome, Terminated
from modelchain.execution.scope import Scope

if TYPE_CHECKING:
    from modelchain.execution.executor import ChainExecutor

logger = get_logger(__name__)


@dataclass
class ExecutionContext:
    """Mutable per-invocation context.

    Example:
        >>> ctx = ExecutionContext("create", "post", scope="restricted", arguments={"title": "hi"})
        >>> ctx.key
        'post.create'
        >>> ctx.terminate({"id": 1})
        Terminated({'id': 1})
        >>> ctx.terminate({"id": 2}).payload
        {'id': 1}
    """

    operation: str
    subject: str
    scope: Scope = Scope.PRIVILEGED
    arguments: dict[str, Any] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)
    environment_handle: Any | None = None
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    outcome: Outcome = field(default=CONTINUE, init=False)
    executor: ChainExecutor | None = field(default=None, repr=False, compare=False)
    _sealed: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Scope.environment raises InvalidConfigError for dual
        self.scope = Scope.environment(self.scope)
        if self.arguments is None:
            self.arguments = {}
        if self.state is None:
            self.state = {}

    @property
    def key(self) -> str:
        """Keyed-state key for this invocation."""
        return f"{self.subject}.{self.operation}"

    @property
    def is_terminated(self) -> bool:
        return self.outcome.is_terminated()

    @property
    def payload(self) -> Any:
        """Terminal payload, or None while the chain continues."""
        return self.outcome.payload

    @property
    def sealed(self) -> bool:
        return self._sealed

    def terminate(self, payload: Any = None) -> Terminated:
        """Short-circuit the chain with ``payload`` as its single result.

        The first call wins. Later calls leave the recorded payload in
        place and return the existing outcome.

        Raises:
            CompositionError: If the chain invocation has already returned
        """
        if self._sealed:
            raise CompositionError(
                f"terminate() called after the chain for '{self.key}' returned"
            ).with_context(
                subject=self.subject,
                operation=self.operation,
                execution_id=self.execution_id,
            )
        if isinstance(self.outcome, Terminated):
            logger.debug(
                "terminate_ignored",
                key=self.key,
                execution_id=self.execution_id,
            )
            return self.outcome
        self.outcome = Terminated(payload)
        return self.outcome

    def seal(self) -> None:
        """Mark the invocation as returned (called by the executor)."""
        self._sealed = True


__all__ = ["ExecutionContext"]
