"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class EnvironmentConfig:
    """Environment variable configuration holder.

    SMTP settings are optional: without them the transport reports itself as
    not configured and the worker falls back to logging emails outside
    production.
    """

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_from: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        smtp_use_tls: bool = True,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
        environment: Optional[str] = None,
        app_name: Optional[str] = None,
        app_url: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_from = smtp_from
        self.smtp_sender_name = smtp_sender_name
        self.smtp_use_tls = smtp_use_tls
        self.log_level = log_level
        self.database_url = database_url or "sqlite:///./data/notifications.db"
        self.environment = environment or "local"
        self.app_name = app_name
        self.app_url = app_url

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def smtp_configured(self) -> bool:
        """True when a host and a credential pair are available."""
        return bool(self.smtp_host and self.smtp_user and self.smtp_pass)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    All variables are optional:
    - SMTP_HOST, SMTP_PORT (default 587), SMTP_USER, SMTP_PASS: mail server
    - SMTP_FROM: sender address (defaults to SMTP_USER)
    - SMTP_SENDER_NAME: display name for the sender (defaults to the app name)
    - SMTP_USE_TLS: STARTTLS on non-465 ports (default true)
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/notifications.db)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: production, staging or local
    - APP_NAME, APP_URL: override the branding section of the config file

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If any provided variable is invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_from = os.getenv("SMTP_FROM")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    smtp_use_tls_str = os.getenv("SMTP_USE_TLS")
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")
    environment = os.getenv("ENVIRONMENT")
    app_name = os.getenv("APP_NAME")
    app_url = os.getenv("APP_URL")

    smtp_port = 587
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    smtp_use_tls = True
    if smtp_use_tls_str:
        normalized = smtp_use_tls_str.strip().lower()
        if normalized in _TRUE_VALUES:
            smtp_use_tls = True
        elif normalized in _FALSE_VALUES:
            smtp_use_tls = False
        else:
            errors.append(
                f"Invalid SMTP_USE_TLS: '{smtp_use_tls_str}'. Use true or false."
            )

    if smtp_from:
        try:
            smtp_from = validate_email(smtp_from, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_FROM address '{smtp_from}': {e}")

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    if smtp_user and not smtp_pass:
        errors.append(
            "SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication."
        )
    elif smtp_pass and not smtp_user:
        errors.append(
            "SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication."
        )

    if (smtp_user or smtp_pass) and not smtp_host:
        errors.append("SMTP credentials are set but SMTP_HOST is missing.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Leave all SMTP_* variables unset to run without a mail server",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_from=smtp_from,
        smtp_sender_name=smtp_sender_name,
        smtp_use_tls=smtp_use_tls,
        log_level=log_level,
        database_url=database_url,
        environment=environment,
        app_name=app_name,
        app_url=app_url,
    )
