"""Runtime configuration using pydantic-settings."""

import json
import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from conductor.exceptions import ConfigurationError

logger = logging.getLogger("config")


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_debug_namespaces: str = Field(
        default="",
        description="Comma-separated list of namespaces to enable debug logging",
    )

    # ==========================================================================
    # Evaluation loop
    # ==========================================================================
    queue_poll_interval_ms: int = Field(
        default=100,
        ge=1,
        description="Milliseconds the evaluation loop sleeps when the event queue is empty",
    )
    startup_delay_seconds: int = Field(
        default=0,
        ge=0,
        description="Seconds to wait before initializing the runtime (lets dependent services come up)",
    )

    # ==========================================================================
    # Planning
    # ==========================================================================
    object_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts the structured object retrieval makes before giving up",
    )
    planning_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for pipeline generation and modification",
    )
    conversation_history_limit: int = Field(
        default=10,
        ge=0,
        description="Number of recent conversation messages fetched for each event",
    )

    # ==========================================================================
    # Capabilities
    # ==========================================================================
    capability_aliases_json: str = Field(
        default="",
        description=(
            "JSON list of groups of interchangeable capability ids. "
            'Example: [["text-generation", "chat-completion"]]'
        ),
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def debug_namespaces(self) -> list[str]:
        """Parse debug namespaces from comma-separated string."""
        if not self.log_debug_namespaces:
            return []
        return [ns.strip() for ns in self.log_debug_namespaces.split(",") if ns.strip()]

    @property
    def capability_aliases(self) -> list[list[str]]:
        """Parse alias groups from ``capability_aliases_json``."""
        raw = (self.capability_aliases_json or "").strip()
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                "capability_aliases_json is not valid JSON",
                details={"value": raw, "error": str(exc)},
            ) from exc

        if not isinstance(payload, list) or not all(
            isinstance(group, list) and all(isinstance(item, str) for item in group)
            for group in payload
        ):
            raise ConfigurationError(
                "capability_aliases_json must be a list of lists of capability ids",
                details={"value": raw},
            )
        return payload

    @property
    def queue_poll_interval_seconds(self) -> float:
        return self.queue_poll_interval_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    logger.debug(
        "Settings loaded",
        extra={
            "service": "config",
            "environment": settings.environment,
            "log_level": settings.log_level,
        },
    )
    return settings
