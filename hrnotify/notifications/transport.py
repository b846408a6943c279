"""Mail transports.

SMTPTransport wraps smtplib with TLS/SSL negotiation, authentication and a
reusable connection. ConsoleTransport logs emails instead of sending them
and is used outside production when no SMTP server is configured.
"""

import logging
import re
import smtplib
import ssl
import threading
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr
from typing import Callable, Optional

from hrnotify.config.environment import EnvironmentConfig

from .models import TransportError, TransportNotConfiguredError, TransportTimeoutError

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_address(address: Optional[str]) -> bool:
    """Cheap shape check run before every send."""
    return bool(address) and ADDRESS_PATTERN.match(address) is not None


class Transport(ABC):
    """Hands a rendered email to a delivery mechanism."""

    name = "transport"

    @abstractmethod
    def send_mail(self, to: str, subject: str, html: str) -> None:
        """Send one HTML email.

        Raises:
            TransportError: With a readable message if the send fails
        """

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the transport has the settings it needs to send."""

    def connect(self) -> None:
        """Open any long-lived resources. Optional."""

    def health_check(self) -> bool:
        return self.is_configured()

    def close(self) -> None:
        """Release long-lived resources. Optional."""


def build_sender_address(env_config: EnvironmentConfig, app_name: str = "HR Notifications") -> str:
    """Build the 'From' header.

    SMTP_FROM wins; otherwise the SMTP user, otherwise noreply at the host.
    The display name is SMTP_SENDER_NAME or the application name.

    Returns:
        Formatted sender address (e.g., "Workseed <hr@example.com>")
    """
    sender_name = env_config.smtp_sender_name or app_name

    if env_config.smtp_from:
        sender_email = env_config.smtp_from
    elif env_config.smtp_user and "@" in env_config.smtp_user:
        sender_email = env_config.smtp_user
    else:
        sender_email = f"noreply@{env_config.smtp_host or 'localhost'}"

    return formataddr((sender_name, sender_email))


class SMTPTransport(Transport):
    """SMTP delivery over a connection reused across sends.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS when
    SMTP_USE_TLS is on. A dropped connection is reopened once per send.
    """

    name = "smtp"

    def __init__(
        self,
        env_config: EnvironmentConfig,
        sender: Optional[str] = None,
        timeout: float = 30.0,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP transport with optional factory injection.

        Args:
            env_config: Environment configuration with SMTP settings
            sender: 'From' header; derived from env_config when omitted
            timeout: Socket timeout in seconds
            smtp_factory: Factory for SMTP instances (for mocking)
            smtp_ssl_factory: Factory for SMTP_SSL instances (for mocking)
        """
        self.env_config = env_config
        self.sender = sender or build_sender_address(env_config)
        self.timeout = timeout
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self._smtp = None
        self._lock = threading.Lock()

    def is_configured(self) -> bool:
        return self.env_config.smtp_configured

    def connect(self) -> None:
        with self._lock:
            self._ensure_connection()

    def send_mail(self, to: str, subject: str, html: str) -> None:
        if not self.is_configured():
            raise TransportNotConfiguredError(
                "SMTP is not configured (set SMTP_HOST, SMTP_USER and SMTP_PASS)"
            )

        message = self._build_message(to, subject, html)

        # A send waiting behind a hung one gives up instead of delivering late
        if not self._lock.acquire(timeout=self.timeout):
            raise TransportTimeoutError(
                f"SMTP connection busy for more than {self.timeout:g}s"
            )
        try:
            smtp = self._ensure_connection()
            try:
                smtp.send_message(message)
            except smtplib.SMTPServerDisconnected:
                logger.info(
                    "SMTP connection dropped, reconnecting",
                    extra={"event": "smtp.reconnect"},
                )
                self._smtp = None
                self._ensure_connection().send_message(message)
        except smtplib.SMTPException as e:
            self._discard_connection()
            raise TransportError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            self._discard_connection()
            raise TransportError(f"Network error during SMTP connection: {e}") from e
        finally:
            self._lock.release()

        logger.debug(
            f"Message sent to {to}",
            extra={"event": "smtp.sent", "recipient": to},
        )

    def health_check(self) -> bool:
        if not self.is_configured():
            return False
        with self._lock:
            try:
                status, _ = self._ensure_connection().noop()
                return status == 250
            except (TransportError, smtplib.SMTPException, OSError) as e:
                logger.warning(
                    f"SMTP health check failed: {e}",
                    extra={"event": "smtp.health_check_failed"},
                )
                self._discard_connection()
                return False

    def close(self) -> None:
        with self._lock:
            if self._smtp is not None:
                try:
                    self._smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")
                finally:
                    self._smtp = None

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")
        return message

    def _ensure_connection(self):
        if self._smtp is not None:
            return self._smtp

        env = self.env_config
        try:
            if env.smtp_port == 465:
                logger.debug(f"Connecting to {env.smtp_host}:{env.smtp_port} with implicit TLS")
                smtp = self.smtp_ssl_factory(
                    env.smtp_host,
                    env.smtp_port,
                    timeout=self.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                logger.debug(f"Connecting to {env.smtp_host}:{env.smtp_port}")
                smtp = self.smtp_factory(env.smtp_host, env.smtp_port, timeout=self.timeout)
                if env.smtp_use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env.smtp_user and env.smtp_pass:
                smtp.login(env.smtp_user, env.smtp_pass)
        except smtplib.SMTPException as e:
            raise TransportError(f"SMTP connection failed: {e}") from e
        except OSError as e:
            raise TransportError(f"Network error during SMTP connection: {e}") from e

        self._smtp = smtp
        return smtp

    def _discard_connection(self) -> None:
        if self._smtp is None:
            return
        try:
            self._smtp.close()
        except (smtplib.SMTPException, OSError) as e:
            logger.debug(f"Ignoring error while discarding SMTP connection: {e}")
        self._smtp = None


class ConsoleTransport(Transport):
    """Writes emails to the log instead of sending them."""

    name = "console"

    def is_configured(self) -> bool:
        return True

    def send_mail(self, to: str, subject: str, html: str) -> None:
        logger.info(
            f"Email to {to}: {subject}",
            extra={
                "event": "console.email",
                "recipient": to,
                "subject": subject,
                "html_length": len(html or ""),
            },
        )


def build_transport(
    env_config: EnvironmentConfig,
    app_name: str = "HR Notifications",
    timeout: float = 30.0,
) -> Transport:
    """Choose the transport for this process.

    SMTP when configured. Without SMTP settings, development environments
    log emails to the console; production keeps an unconfigured SMTP
    transport so sends fail loudly and stay queued for retry.
    """
    if env_config.smtp_configured or env_config.is_production:
        transport: Transport = SMTPTransport(
            env_config,
            sender=build_sender_address(env_config, app_name),
            timeout=timeout,
        )
    else:
        transport = ConsoleTransport()

    logger.info(
        f"Using {transport.name} mail transport",
        extra={
            "event": "transport.selected",
            "transport": transport.name,
            "configured": transport.is_configured(),
        },
    )
    return transport
