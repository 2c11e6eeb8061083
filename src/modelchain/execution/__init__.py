"""Modelchain Execution -- specs, registry, resolution and chain execution.

Architecture::

    scope.py        Scope (privileged / restricted / dual)
    spec.py         Bare / Configured / Nested specs + constructors
    outcome.py      Continue / Terminated
    context.py      ExecutionContext
    chain.py        Continuation, BoundStep, build_chain, compose
    adapter.py      Privileged / Restricted / Dual views, adapt()
    registry.py     StepRegistry + decorators + default registry
    resolver.py     SpecResolver
    executor.py     ChainExecutor, execute_chain, resolve
    spec_yaml.py    PipelineDocument (YAML / JSON pipelines)
    inspection.py   describe_pipeline, list_registered
"""

from modelchain.execution.adapter import DualView, PrivilegedView, RestrictedView, adapt
from modelchain.execution.chain import BoundStep, Chain, Continuation, build_chain, compose
from modelchain.execution.context import ExecutionContext
from modelchain.execution.executor import ChainExecutor, execute_chain, get_default_executor, resolve
from modelchain.execution.inspection import StepReport, StepStatus, describe_pipeline, list_registered
from modelchain.execution.outcome import CONTINUE, Continue, Outcome, Terminated
from modelchain.execution.registry import (
    RegisteredStep,
    StepRegistry,
    dual_step,
    get_default_registry,
    privileged_step,
    register_step,
    reset_default_registry,
    restricted_step,
)
from modelchain.execution.resolver import SpecResolver
from modelchain.execution.scope import Scope
from modelchain.execution.spec import (
    Bare,
    Configured,
    Nested,
    Spec,
    SpecLike,
    parse_spec,
    parse_specs,
    spec_args,
    spec_name,
    spec_scope,
    to_raw,
)
from modelchain.execution.spec_yaml import ModelSpec, PipelineDocument, StepSpecModel

__all__ = [
    "Bare",
    "BoundStep",
    "CONTINUE",
    "Chain",
    "ChainExecutor",
    "Configured",
    "Continuation",
    "Continue",
    "DualView",
    "ExecutionContext",
    "ModelSpec",
    "Nested",
    "Outcome",
    "PipelineDocument",
    "PrivilegedView",
    "RegisteredStep",
    "RestrictedView",
    "Scope",
    "Spec",
    "SpecLike",
    "SpecResolver",
    "StepRegistry",
    "StepReport",
    "StepSpecModel",
    "StepStatus",
    "Terminated",
    "adapt",
    "build_chain",
    "compose",
    "describe_pipeline",
    "dual_step",
    "execute_chain",
    "get_default_executor",
    "get_default_registry",
    "list_registered",
    "parse_spec",
    "parse_specs",
    "privileged_step",
    "register_step",
    "reset_default_registry",
    "resolve",
    "restricted_step",
    "spec_args",
    "spec_name",
    "spec_scope",
    "to_raw",
]
