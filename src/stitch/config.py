"""Configuration management for stitch."""

from __future__ import annotations

from enum import Enum

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .logging_utils import LogProfile, configure_logging


class TurnEndPolicy(str, Enum):
    """How items still open when their turn ends are treated."""

    LEAVE_OPEN = "leave_open"
    FINALIZE = "finalize"


class Settings(BaseSettings):
    """Application settings."""

    # Reconciliation
    turn_end_policy: TurnEndPolicy = Field(
        default=TurnEndPolicy.LEAVE_OPEN,
        description="Whether a terminal turn force-finalizes its open items",
    )
    preview_limit: int = Field(default=200, ge=16, description="Length of frame previews in decode diagnostics")

    # Rendering
    tool_output_limit: int = Field(default=2000, ge=0, description="Truncate tool output in console views (0 = off)")
    show_thinking: bool = Field(default=True, description="Render thinking traces")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_profile: LogProfile = Field(default="default", description="Log profile (default, console)")

    model_config = SettingsConfigDict(
        env_prefix="STITCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a value from the environment or overrides is invalid
    """
    try:
        settings = Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(f"invalid stitch settings: {exc}") from exc

    configure_logging(profile=settings.log_profile, level=settings.log_level)

    return settings
