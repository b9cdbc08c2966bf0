"""Pydantic configuration models for the search sync service."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal, Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class KafkaAuthMechanism(StrEnum):
    """Kafka SASL authentication mechanisms."""

    NONE = "none"
    SASL_PLAIN = "sasl_plain"
    SASL_SCRAM_256 = "sasl_scram_256"
    SASL_SCRAM_512 = "sasl_scram_512"


class KafkaConfig(BaseModel):
    """Kafka broker and consumer settings."""

    bootstrap_servers: str = "localhost:9092"
    group_id: str = "content-group"
    topics: list[str] = Field(default_factory=lambda: ["content-service.contents"])
    auto_offset_reset: Literal["earliest", "latest"] = "earliest"
    enable_idempotence: bool = True
    acks: str = "all"
    # Consumer tuning
    session_timeout_ms: int = Field(default=45000, ge=1000)
    max_poll_interval_ms: int = Field(default=300000, ge=1000)
    fetch_min_bytes: int = Field(default=1, ge=1)
    fetch_max_wait_ms: int = Field(default=500, ge=0)
    poll_batch_size: int = Field(default=1, ge=1)
    commit_asynchronous: bool = False
    # Auth / security
    security_protocol: str = "PLAINTEXT"
    auth_mechanism: KafkaAuthMechanism = KafkaAuthMechanism.NONE
    sasl_username: str | None = None
    sasl_password: SecretStr | None = None
    ssl_ca_location: str | None = None
    ssl_certificate_location: str | None = None
    ssl_key_location: str | None = None

    @field_validator("topics")
    @classmethod
    def validate_topics(cls, v: list[str]) -> list[str]:
        if not v:
            msg = "at least one topic must be configured"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_auth_requirements(self) -> Self:
        """Validate that SASL credentials are present when required."""
        if self.auth_mechanism != KafkaAuthMechanism.NONE and (
            not self.sasl_username or not self.sasl_password
        ):
            msg = (
                "sasl_username and sasl_password are required "
                f"when auth_mechanism is '{self.auth_mechanism.value}'"
            )
            raise ValueError(msg)
        return self


class IndexConfig(BaseModel):
    """Elasticsearch target index settings."""

    url: str = "http://localhost:9200"
    index_name: str = Field(default="content-service.contents", min_length=1)
    username: str | None = None
    password: SecretStr | None = None
    api_key: SecretStr | None = None
    verify_certs: bool = True
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    # Upper bound for one upsert/delete, including HTTP retries.
    write_timeout_seconds: float = Field(default=30.0, gt=0)
    refresh: Literal["false", "true", "wait_for"] = "false"

    @field_validator("index_name")
    @classmethod
    def validate_index_name(cls, v: str) -> str:
        if v != v.lower() or any(ch in v for ch in ' "*\\<|,>/?#'):
            msg = (
                f"index_name '{v}' must be lowercase and contain none of "
                "the characters  \"*\\<|,>/?#"
            )
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_auth(self) -> Self:
        """Basic auth and API key are mutually exclusive."""
        if self.api_key is not None and self.username is not None:
            msg = "configure either username/password or api_key, not both"
            raise ValueError(msg)
        if self.username is not None and self.password is None:
            msg = "password is required when username is set"
            raise ValueError(msg)
        return self


class RetryConfig(BaseModel):
    """Retry / backoff configuration."""

    max_attempts: int = Field(default=3, ge=1)
    initial_wait_seconds: float = Field(default=0.5, gt=0)
    max_wait_seconds: float = Field(default=10.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    # Pause before a pending (unacknowledged) message is redelivered.
    redelivery_backoff_seconds: float = Field(default=1.0, ge=0.0)


class DLQConfig(BaseModel):
    """Dead Letter Queue settings for terminally failed messages."""

    enabled: bool = False
    topic_suffix: str = Field(default="dlq", min_length=1)
    include_headers: bool = True


class LoggingConfig(BaseModel):
    """structlog output settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = True


class SyncConfig(BaseModel, extra="forbid"):
    """Top-level configuration for one sync pipeline."""

    pipeline_id: str = "content-sync"
    kafka: KafkaConfig = KafkaConfig()
    index: IndexConfig = IndexConfig()
    retry: RetryConfig = RetryConfig()
    dlq: DLQConfig = DLQConfig()
    logging: LoggingConfig = LoggingConfig()
    health_port: int = Field(default=8080, ge=0, le=65535)
    health_enabled: bool = True
