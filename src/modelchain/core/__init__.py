"""Modelchain Core -- ambient primitives shared by every layer.

Architecture::

    errors.py       Structured error hierarchy (ModelchainError, CompositionError)
    logging.py      structlog configuration + get_logger / LogContext
    settings.py     EngineSettings (pydantic-settings, MODELCHAIN_ prefix)
    keyed_state.py  Bounded, lock-protected keyed map (LRU)
"""

from modelchain.core.errors import (
    CircuitOpenError,
    CompositionError,
    ConfigError,
    ControlError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MissingEnvironmentError,
    ModelchainError,
    RateLimitExceeded,
    ScopeViolationError,
    SpecDefinitionError,
    StepFactoryError,
    StepTimeoutError,
    categorize_error,
    is_retryable,
)
from modelchain.core.keyed_state import KeyedStore
from modelchain.core.logging import LogContext, configure_logging, get_logger
from modelchain.core.settings import EngineSettings, get_settings, reset_settings

__all__ = [
    "CircuitOpenError",
    "CompositionError",
    "ConfigError",
    "ControlError",
    "EngineSettings",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "KeyedStore",
    "LogContext",
    "MissingEnvironmentError",
    "ModelchainError",
    "RateLimitExceeded",
    "ScopeViolationError",
    "SpecDefinitionError",
    "StepFactoryError",
    "StepTimeoutError",
    "categorize_error",
    "configure_logging",
    "get_logger",
    "get_settings",
    "is_retryable",
    "reset_settings",
]
