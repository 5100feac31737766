"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from tidemark.core.exceptions import ConfigurationError

MIN_WINDOW_SIZE_MINUTES = 15
MAX_WINDOW_SIZE_MINUTES = 24 * 60


class ExportConfig(BaseSettings):
    """Source tables, export window and export destination."""

    model_config = {"env_prefix": "TIDEMARK_EXPORT_"}

    source_table_names: str = ""  # comma-separated, one workflow per table
    window_size_minutes: int = MIN_WINDOW_SIZE_MINUTES
    deployment_alias: str = "tidemark"
    bucket_name: str = ""
    bucket_prefix: str = "exports"
    bucket_owner_account_id: str | None = None
    export_format: Literal["DYNAMODB_JSON", "ION"] = "DYNAMODB_JSON"
    full_export_poll_seconds: int = 300
    incremental_export_poll_seconds: int = 60

    @field_validator("window_size_minutes")
    @classmethod
    def _check_window_size(cls, value: int) -> int:
        if value < MIN_WINDOW_SIZE_MINUTES or value > MAX_WINDOW_SIZE_MINUTES:
            raise ValueError(
                f"window_size_minutes has to be between {MIN_WINDOW_SIZE_MINUTES} minutes "
                f"and {MAX_WINDOW_SIZE_MINUTES:,} minutes (24h), got {value}"
            )
        return value

    @property
    def table_names(self) -> list[str]:
        return [name.strip() for name in self.source_table_names.split(",") if name.strip()]


class AwsConfig(BaseSettings):
    """AWS client configuration shared by SSM, DynamoDB and SNS."""

    model_config = {"env_prefix": "TIDEMARK_AWS_"}

    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class NotificationConfig(BaseSettings):
    """Notification topic and subscriber endpoints."""

    model_config = {"env_prefix": "TIDEMARK_NOTIFY_"}

    topic_arn: str = ""
    use_existing_topic: bool = False
    success_email: str = ""
    success_sqs_arn: str = ""
    failure_email: str = ""


class RedisConfig(BaseSettings):
    """Redis connection used by the per-table cycle lease."""

    model_config = {"env_prefix": "TIDEMARK_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    lease_ttl_seconds: int = 6 * 60 * 60


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "TIDEMARK_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    lease_backend: Literal["none", "redis"] = "none"

    export: ExportConfig = Field(default_factory=ExportConfig)
    aws: AwsConfig = Field(default_factory=AwsConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)


def load_settings(**overrides) -> AppSettings:
    """Build settings from the environment, failing fast on invalid values.

    Raises:
        ConfigurationError: if any setting fails validation.
    """
    try:
        return AppSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
