"""Service configuration loaded from environment variables and ``.env``."""

from __future__ import annotations

import random

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .backoff import BackoffPolicy
from .exceptions import ConfigurationError
from .topology import StageTopology


class RetryRelaySettings(BaseSettings):
    """Retry-relay configuration.

    Every field can be set through an environment variable with the
    ``RETRY_RELAY_`` prefix, e.g. ``RETRY_RELAY_BOOTSTRAP_SERVERS`` or
    ``RETRY_RELAY_RETRY_3_JITTER_MS``.

    Retry stages:
        main → retry-1 (fixed ``retry_1_delay_ms``)
             → retry-2 (fixed ``retry_2_delay_ms``)
             → retry-3 (``retry_3_base_delay_ms`` + up to ``retry_3_jitter_ms``)
             → deadletter
    """

    model_config = SettingsConfigDict(
        env_prefix="RETRY_RELAY_",
        env_file=".env",
        extra="ignore",
    )

    # Broker
    bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka bootstrap servers",
    )
    group_id: str = Field(
        default="kafka-retry-dlq-demo",
        min_length=1,
        description="Consumer group prefix; each stage appends its name",
    )

    # Topics
    topic_main: str = Field(default="main", min_length=1)
    topic_retry_1: str = Field(default="retry-1", min_length=1)
    topic_retry_2: str = Field(default="retry-2", min_length=1)
    topic_retry_3: str = Field(default="retry-3", min_length=1)
    topic_dead_letter: str = Field(default="deadletter", min_length=1)

    # Backoff
    retry_1_delay_ms: int = Field(default=5000, ge=0)
    retry_2_delay_ms: int = Field(default=15000, ge=0)
    retry_3_base_delay_ms: int = Field(default=30000, ge=0)
    retry_3_jitter_ms: int = Field(default=10000, ge=0)

    # Consumer behaviour
    retry_on_not_found: bool = Field(
        default=False,
        description="Route updates for unknown employees through the retry chain",
    )
    error_backoff_ms: int = Field(default=1000, ge=0)

    # Synthetic producer
    producer_enabled: bool = True
    producer_interval_ms: int = Field(default=10000, gt=0)

    # Employee store
    database_url: str = Field(default="sqlite+aiosqlite:///./employees.db")
    seed_employees: bool = Field(
        default=True,
        description="Create the employees table and rows 1-5 on startup",
    )

    log_level: str = Field(default="INFO")

    def bootstrap_server_list(self) -> list[str]:
        return [s.strip() for s in self.bootstrap_servers.split(",") if s.strip()]

    def topology(self) -> StageTopology:
        return StageTopology(
            intake=self.topic_main,
            retries=(self.topic_retry_1, self.topic_retry_2, self.topic_retry_3),
            dead_letter=self.topic_dead_letter,
        )

    def backoff_policy(self, rng: random.Random | None = None) -> BackoffPolicy:
        return BackoffPolicy.three_stage(
            retry_1_ms=self.retry_1_delay_ms,
            retry_2_ms=self.retry_2_delay_ms,
            retry_3_base_ms=self.retry_3_base_delay_ms,
            retry_3_jitter_ms=self.retry_3_jitter_ms,
            rng=rng,
        )


def load_settings(**overrides: object) -> RetryRelaySettings:
    """Load settings, turning validation failures into ConfigurationError."""
    try:
        settings = RetryRelaySettings(**overrides)  # type: ignore[arg-type]
        settings.topology()
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    if not settings.bootstrap_server_list():
        raise ConfigurationError("At least one bootstrap server is required")
    return settings
