"""Kernel settings.

Every deployment of the kernel shares a handful of knobs (log level, the API
version assumed when a caller omits one, what happens when no listener has an
opinion on authorization). ``KernelSettings`` collects them in one validated,
environment-driven object.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-request
    - **Environment-driven:** Reads ``APIKERNEL_*`` env vars and ``.env``
    - **Sensible defaults:** Fail-closed authorization out of the box

Examples:
    >>> from apikernel.settings import KernelSettings
    >>> KernelSettings(default_authorization="allow").allows_by_default
    True

Tags:
    settings, configuration, pydantic, environment, apikernel
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_VERSIONS = (2, 3, 4)

DEFAULT_DEBUG_TIP = "add debug=1 to your API call to have more info about the error"


class KernelSettings(BaseSettings):
    """Settings consumed by the kernel, the error normalizer and logging.

    Fields
    ──────
    log_level             : Structlog log level
    log_format            : ``console`` for development, ``json`` for shipping
    default_version       : API version assumed when params carry none
    default_authorization : Verdict of the default policy listener
    constraint_markers    : Message prefixes that trigger FK re-validation
    debug_tip             : Hint added to infrastructure errors without debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APIKERNEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    # ── Pipeline ─────────────────────────────────────────────────
    default_version: int = 3
    default_authorization: Literal["deny", "allow"] = "deny"

    # ── Error normalization ──────────────────────────────────────
    constraint_markers: list[str] = Field(
        default_factory=lambda: ["DB Error:"],
        description="Storage messages that begin with one of these are re-derived",
    )
    debug_tip: str = DEFAULT_DEBUG_TIP

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value

    @field_validator("default_version")
    @classmethod
    def _known_version(cls, value: int) -> int:
        if value not in SUPPORTED_VERSIONS:
            raise ValueError(f"default_version must be one of {SUPPORTED_VERSIONS}, got {value}")
        return value

    @property
    def allows_by_default(self) -> bool:
        return self.default_authorization == "allow"


_settings: KernelSettings | None = None


def get_settings() -> KernelSettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = KernelSettings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings (for testing)."""
    global _settings
    _settings = None


__all__ = [
    "DEFAULT_DEBUG_TIP",
    "KernelSettings",
    "SUPPORTED_VERSIONS",
    "get_settings",
    "reset_settings",
]
