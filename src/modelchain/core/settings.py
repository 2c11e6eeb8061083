"""Engine settings.

``EngineSettings`` collects the knobs an application sets once at startup:
log output, the bound on keyed control state, and the defaults used when a
control step is declared without explicit values.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not runtime
    - **Environment-driven:** Reads ``MODELCHAIN_*`` env vars and .env files
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> from modelchain.core.settings import get_settings
    >>> get_settings().state_max_keys
    10000

Tags:
    settings, configuration, pydantic, environment, modelchain

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings shared by the executor, the control steps and the CLI.

    Fields
    ──────
    service_name            : ``service.name`` attached to every log line
    log_level               : Structlog log level
    log_json                : Force JSON (True) / console (False); None = auto
    log_cache_loggers       : Pin loggers to the configuration on first use
    state_max_keys          : LRU bound for each keyed control-state store
    default_retries         : ``retryable`` retries when none are declared
    default_circuit_timeout : ``circuit_breaker`` attempt timeout in seconds
    """

    model_config = SettingsConfigDict(
        env_prefix="MODELCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    service_name: str = "modelchain"
    log_level: str = "INFO"
    log_json: bool | None = None
    log_cache_loggers: bool = True

    # ── Control state ────────────────────────────────────────────
    state_max_keys: int = Field(default=10_000, ge=1, description="Keys kept per control-state store")
    default_retries: int = Field(default=3, ge=0)
    default_circuit_timeout: float = Field(default=10.0, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return the process-wide settings (read once from the environment)."""
    return EngineSettings()


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    get_settings.cache_clear()
