"""
Structured error types for the modelchain engine.

Provides a typed hierarchy of errors with metadata for retry decisions,
categorization and logging, plus error chaining for root cause analysis.

The engine distinguishes sharply between conditions that are *defects*
(a custom step calling its continuation twice), *configuration problems*
(a privileged step without its environment handle), and *control-flow
rejections* (rate limit, open circuit, timeout). Each family carries a
category so callers can route it without string matching.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure family
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry subject/operation/step metadata
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      ModelchainError                            │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  CompositionError     ConfigError            ScopeViolationError│
        │  (COMPOSITION)        (CONFIG)               (SCOPE)            │
        │                          │                                      │
        │                   MissingEnvironmentError                       │
        │                   InvalidConfigError                            │
        │                   SpecDefinitionError                           │
        │                   StepFactoryError                              │
        │                                                                 │
        │  ControlError (CONTROL)                                         │
        │       │                                                         │
        │  RateLimitExceeded   CircuitOpenError   StepTimeoutError        │
        └─────────────────────────────────────────────────────────────────┘

    A missing step name is *not* an exception: it is logged as a
    ``step_not_found`` warning and the entry is dropped.

Examples:
    >>> error = RateLimitExceeded("too frequent", retry_after=0.4)
    >>> error.retryable
    True
    >>> error.with_context(subject="post", operation="create").context.subject
    'post'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    modelchain

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    COMPOSITION = "COMPOSITION"
    CONFIG = "CONFIG"
    SCOPE = "SCOPE"
    CONTROL = "CONTROL"
    STEP = "STEP"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        operation: Operation being executed (e.g. ``create``)
        subject: Resource/model name (e.g. ``post``)
        step: Name of the step that raised or was being resolved
        scope: Execution scope value at the time of the error
        execution_id: Correlation id of the chain invocation
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    subject: str | None = None
    step: str | None = None
    scope: str | None = None
    execution_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "subject", "step", "scope", "execution_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ModelchainError(Exception):
    """
    Base exception for all modelchain errors.

    All instances carry:
    - **category:** ErrorCategory for classification and routing
    - **retryable:** Whether the failing operation may be retried
    - **retry_after:** Optional seconds to wait before retrying
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = ModelchainError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ModelchainError:
        """
        Add context to this error (fluent API).

        Usage:
            raise CompositionError("next() called twice").with_context(
                subject="post", operation="create", step="audit"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# COMPOSITION ERRORS (Defects, never retryable)
# =============================================================================


class CompositionError(ModelchainError):
    """
    A step broke the chain contract.

    Raised when a step invokes its continuation more than once, or when
    ``terminate`` is called on a context whose chain invocation already
    returned. This signals an implementation defect in a custom step and
    aborts the whole chain.
    """

    default_category = ErrorCategory.COMPOSITION


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(ModelchainError):
    """Configuration error."""

    default_category = ErrorCategory.CONFIG


class MissingEnvironmentError(ConfigError):
    """A privileged step was asked to run without an environment handle."""

    def __init__(self, step: str | None = None, message: str | None = None):
        msg = message or (
            f"Privileged step '{step}' requires an environment handle"
            if step
            else "Privileged step requires an environment handle"
        )
        super().__init__(msg)
        self.context.step = step


class InvalidConfigError(ConfigError):
    """A configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        msg = message or f"Invalid value for {key}: {value!r}"
        super().__init__(msg)
        self.context.metadata["config_key"] = key
        self.context.metadata["config_value"] = repr(value)


class SpecDefinitionError(ConfigError):
    """A spec entry or spec document could not be parsed."""

    pass


class StepFactoryError(ConfigError):
    """A registered step factory raised while building a step from its args."""

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"Factory for step '{step}' failed: {cause}", cause=cause)
        self.context.step = step


# =============================================================================
# SCOPE ERRORS
# =============================================================================


class ScopeViolationError(ModelchainError):
    """A scope-specific step was about to run in the other environment."""

    default_category = ErrorCategory.SCOPE

    def __init__(self, step: str, step_scope: str, context_scope: str):
        super().__init__(
            f"Step '{step}' is registered for scope '{step_scope}' "
            f"but the chain is executing in scope '{context_scope}'"
        )
        self.context.step = step
        self.context.scope = context_scope


# =============================================================================
# CONTROL-FLOW REJECTIONS
# =============================================================================


class ControlError(ModelchainError):
    """Base for rejections raised by control-flow primitives."""

    default_category = ErrorCategory.CONTROL


class RateLimitExceeded(ControlError):
    """Raised by throttle when a key is invoked too frequently."""

    default_retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float | None = None,
    ):
        super().__init__(message, retry_after=retry_after)


class CircuitOpenError(ControlError):
    """Raised when a circuit is open and no fallback is configured."""

    default_retryable = True

    def __init__(self, message: str = "Circuit breaker is open", retry_after: float | None = None):
        super().__init__(message, retry_after=retry_after)


class StepTimeoutError(ControlError):
    """Raised when a guarded attempt exceeds its deadline.

    Attributes:
        timeout: The timeout value that was exceeded
        operation: Name/description of the operation
    """

    default_retryable = True

    def __init__(self, timeout: float, operation: str = "operation"):
        self.timeout = timeout
        self.operation = operation
        super().__init__(f"Operation '{operation}' timed out after {timeout}s")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ModelchainError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ModelchainError):
        return error.category
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.STEP


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ModelchainError",
    "CompositionError",
    "ConfigError",
    "MissingEnvironmentError",
    "InvalidConfigError",
    "SpecDefinitionError",
    "StepFactoryError",
    "ScopeViolationError",
    "ControlError",
    "RateLimitExceeded",
    "CircuitOpenError",
    "StepTimeoutError",
    "is_retryable",
    "categorize_error",
]
