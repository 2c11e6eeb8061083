"""Pipeline inspection - how would a spec list resolve, without running it.

Used by the CLI and by applications that want to show which steps an
operation will actually execute in each environment.

Tags:
    modelchain, execution, inspection, diagnostics
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from modelchain.execution.registry import StepRegistry, get_default_registry
from modelchain.execution.scope import Scope
from modelchain.execution.spec import Bare, Configured, Spec, SpecLike, parse_specs, spec_scope


class StepStatus(str, Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    SKIPPED_SCOPE = "skipped_scope"
    CHILDREN_SKIPPED = "children_skipped"


@dataclass
class StepReport:
    """Resolution result for one spec entry."""

    name: str
    kind: str
    requested_scope: str
    resolved_scope: str | None
    status: StepStatus
    children: list[StepReport] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "requested_scope": self.requested_scope,
            "resolved_scope": self.resolved_scope,
            "status": self.status.value,
            "children": [c.to_dict() for c in self.children],
        }


async def describe_pipeline(
    specs: Iterable[SpecLike],
    scope: Scope | str,
    registry: StepRegistry | None = None,
) -> list[StepReport]:
    """Report how every entry of ``specs`` resolves in ``scope``."""
    env = Scope.environment(scope)
    reg = registry or get_default_registry()
    await reg.ensure_ready()
    return [_describe(spec, env, reg) for spec in parse_specs(specs)]


def _describe(spec: Spec, scope: Scope, registry: StepRegistry) -> StepReport:
    requested = spec_scope(spec)
    kind = "bare" if isinstance(spec, Bare) else "configured" if isinstance(spec, Configured) else "nested"

    if requested is not Scope.DUAL and requested is not scope:
        return StepReport(spec.name, kind, requested.value, None, StepStatus.SKIPPED_SCOPE)

    entry = registry.lookup(spec.name, scope)
    resolved = entry.scope.value if entry else None
    status = StepStatus.RESOLVED if entry else StepStatus.NOT_FOUND

    if kind != "nested":
        return StepReport(spec.name, kind, requested.value, resolved, status)

    if scope is Scope.PRIVILEGED:
        children = [_describe(child, scope, registry) for child in spec.children]
        return StepReport(spec.name, kind, requested.value, resolved, status, children)

    if entry is not None:
        status = StepStatus.CHILDREN_SKIPPED
    return StepReport(spec.name, kind, requested.value, resolved, status)


async def list_registered(registry: StepRegistry | None = None) -> dict[str, list[str]]:
    """Registered step names grouped by scope table."""
    reg = registry or get_default_registry()
    await reg.ensure_ready()
    grouped: dict[str, list[str]] = {scope.value: [] for scope in Scope}
    for scope, name in reg.list_steps():
        grouped[scope].append(name)
    return grouped


__all__ = ["StepReport", "StepStatus", "describe_pipeline", "list_registered"]
