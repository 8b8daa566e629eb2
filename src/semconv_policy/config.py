"""
Centralized configuration for semconv-policy.

Uses Pydantic BaseSettings for environment variable integration
and validation.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (SEMCONV_POLICY_*)
3. .env file
4. Default values

Example:
    from semconv_policy.config import get_config

    config = get_config()
    print(config.banned_word)  # From SEMCONV_POLICY_BANNED_WORD or default

    # Override at runtime
    config = get_config(fail_on_improvement=True)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PolicyConfig(BaseSettings):
    """
    Settings for rule loading, evaluation, and reporting.

    Example:
        export SEMCONV_POLICY_LOG_LEVEL=debug
        export SEMCONV_POLICY_RULES_PATHS='["policies/extra.yaml"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="SEMCONV_POLICY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format (json for log pipelines, text for console)",
    )

    # Rule catalog
    rules_paths: list[str] = Field(
        default_factory=list,
        description="Extra declarative rule catalog files, loaded after the builtins",
    )
    include_builtin_rules: bool = Field(
        default=True,
        description="Load the first-party rule catalog",
    )

    # Rule parameters
    banned_word: str = Field(
        default="test",
        min_length=1,
        description="Word flagged in attribute names and span status messages",
    )
    integral_units: list[str] = Field(
        default_factory=lambda: ["By", "bit"],
        description="Units whose data point values must be whole numbers",
    )

    # Reporting
    fail_on_improvement: bool = Field(
        default=False,
        description="Treat improvement-level advice as failing in CI",
    )
    output_format: Literal["text", "json"] = Field(
        default="text",
        description="Default CLI report format",
    )

    @field_validator("rules_paths")
    @classmethod
    def expand_paths(cls, v: list[str]) -> list[str]:
        """Expand ~ and environment variables in paths."""
        return [os.path.expanduser(os.path.expandvars(p)) for p in v]

    def get_rules_paths(self) -> list[Path]:
        return [Path(p) for p in self.rules_paths]


# Global singleton
_config: Optional[PolicyConfig] = None


def get_config(**overrides) -> PolicyConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _config

    if overrides or _config is None:
        _config = PolicyConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
