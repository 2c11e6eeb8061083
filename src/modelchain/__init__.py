"""modelchain - middleware composition and execution engine.

Declare an operation as an ordered list of named steps; modelchain resolves
each name against scope-partitioned registries, expands nested
sub-pipelines and runs the result as one onion-style chain in either the
privileged or the restricted environment.

Example:
    >>> from modelchain import ExecutionContext, execute_chain, throttle, cacheable
    >>> ctx = ExecutionContext("list", "post", scope="restricted")
    >>> outcome = await execute_chain([throttle(0.5, default=[]), cacheable(30), "fetch"], ctx)
    >>> outcome.payload

Packages:
    core        errors, logging, settings, keyed state
    execution   specs, registry, resolver, chain, executor
    controls    throttle, debounce, retryable, cacheable, circuit_breaker, rate_limit
    steps       run, log_request, debug, timed
    cli         ``modelchain`` command
"""

__version__ = "0.1.0"

from modelchain.controls import ControlState, get_default_control_state, reset_default_control_state
from modelchain.core.errors import (
    CircuitOpenError,
    CompositionError,
    ConfigError,
    ControlError,
    MissingEnvironmentError,
    ModelchainError,
    RateLimitExceeded,
    ScopeViolationError,
    SpecDefinitionError,
    StepFactoryError,
    StepTimeoutError,
)
from modelchain.execution import (
    CONTINUE,
    Bare,
    ChainExecutor,
    Configured,
    Continue,
    ExecutionContext,
    Nested,
    Outcome,
    PipelineDocument,
    Scope,
    StepRegistry,
    Terminated,
    build_chain,
    compose,
    describe_pipeline,
    dual_step,
    execute_chain,
    get_default_registry,
    privileged_step,
    register_step,
    reset_default_registry,
    resolve,
    restricted_step,
)
from modelchain.execution.spec import (
    cacheable,
    circuit_breaker,
    debounce,
    debug,
    log_request,
    retryable,
    rate_limit,
    run,
    throttle,
    timed,
)

__all__ = [
    "CONTINUE",
    "Bare",
    "ChainExecutor",
    "CircuitOpenError",
    "CompositionError",
    "ConfigError",
    "Configured",
    "Continue",
    "ControlError",
    "ControlState",
    "ExecutionContext",
    "MissingEnvironmentError",
    "ModelchainError",
    "Nested",
    "Outcome",
    "PipelineDocument",
    "RateLimitExceeded",
    "Scope",
    "ScopeViolationError",
    "SpecDefinitionError",
    "StepFactoryError",
    "StepRegistry",
    "StepTimeoutError",
    "Terminated",
    "__version__",
    "build_chain",
    "cacheable",
    "circuit_breaker",
    "compose",
    "debounce",
    "debug",
    "describe_pipeline",
    "dual_step",
    "execute_chain",
    "get_default_control_state",
    "get_default_registry",
    "log_request",
    "privileged_step",
    "rate_limit",
    "register_step",
    "reset_default_control_state",
    "reset_default_registry",
    "resolve",
    "restricted_step",
    "retryable",
    "run",
    "throttle",
    "timed",
]
