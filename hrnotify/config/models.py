"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class QueueConfig(BaseModel):
    """Delivery queue and retry settings."""

    batch_size: int = Field(50, ge=1, le=1000, description="Records attempted per batch run")
    max_retries: int = Field(
        3, ge=1, le=10, description="Failed attempts before a record is marked FAILED"
    )
    send_delay_ms: int = Field(
        100, ge=0, le=10000, description="Pause between consecutive sends in a batch"
    )
    send_timeout_seconds: float = Field(
        30.0, gt=0, le=300, description="Upper bound for a single transport send"
    )
    process_interval: str = Field("30s", description="How often the worker drains the queue")
    stale_sending_after: str = Field(
        "15m", description="Age after which a SENDING claim is considered abandoned"
    )

    # Computed fields
    process_interval_seconds: Optional[int] = None
    stale_sending_after_seconds: Optional[int] = None

    @field_validator("process_interval")
    @classmethod
    def validate_process_interval(cls, v: str) -> str:
        """Validate the worker interval (5 seconds to 1 hour)."""
        try:
            seconds = parse_duration(v)
            validate_duration_range(
                seconds, min_seconds=5, max_seconds=3600, label="process_interval"
            )
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @field_validator("stale_sending_after")
    @classmethod
    def validate_stale_sending_after(cls, v: str) -> str:
        """Validate the stale-claim threshold (1 minute to 1 day)."""
        try:
            seconds = parse_duration(v)
            validate_duration_range(
                seconds, min_seconds=60, max_seconds=86400, label="stale_sending_after"
            )
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def compute_durations(self):
        """Compute derived durations in seconds."""
        self.process_interval_seconds = parse_duration(self.process_interval)
        self.stale_sending_after_seconds = parse_duration(self.stale_sending_after)

        # A claim must outlive at least one send attempt
        if self.stale_sending_after_seconds <= self.send_timeout_seconds:
            raise ValueError(
                "stale_sending_after must be longer than send_timeout_seconds"
            )
        return self


class BrandingConfig(BaseModel):
    """Values injected into every rendered email."""

    app_name: str = Field("Workseed", min_length=1, description="Product name in the email shell")
    app_url: str = Field(
        "http://localhost:3000", min_length=1, description="Base URL for links in emails"
    )

    @field_validator("app_name", "app_url")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from string fields."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @field_validator("app_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Templates append paths such as /dashboard, so drop a trailing slash."""
        return v.rstrip("/")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification worker."""

    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue settings")
    branding: BrandingConfig = Field(
        default_factory=BrandingConfig, description="Email branding"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
