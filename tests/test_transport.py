"""Unit tests for mail transports.

Tests the SMTPTransport for:
- Connection handling (SMTP and SMTP_SSL)
- STARTTLS negotiation and authentication
- Connection reuse and reconnect after a drop
- Error wrapping into TransportError
- Health checks and close

Plus the console transport, sender address building, the address check
and transport selection.
"""

import smtplib
from unittest.mock import MagicMock, Mock

import pytest

from hrnotify.config.environment import EnvironmentConfig
from hrnotify.notifications.models import (
    TransportError,
    TransportNotConfiguredError,
    TransportTimeoutError,
)
from hrnotify.notifications.transport import (
    ConsoleTransport,
    SMTPTransport,
    build_sender_address,
    build_transport,
    is_valid_address,
)


@pytest.fixture
def env_config():
    """SMTP settings with STARTTLS and credentials."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="hr@example.com",
        smtp_pass="secret123",
        smtp_sender_name="Workseed HR",
    )


@pytest.fixture
def env_config_implicit_tls():
    """SMTP settings for implicit TLS (port 465)."""
    return EnvironmentConfig(
        smtp_host="smtp.gmail.com",
        smtp_port=465,
        smtp_user="hr@gmail.com",
        smtp_pass="apppassword",
    )


@pytest.fixture
def smtp_instance():
    instance = MagicMock()
    instance.noop.return_value = (250, b"OK")
    return instance


@pytest.fixture
def smtp_factory(smtp_instance):
    return Mock(return_value=smtp_instance)


class TestSMTPTransport:
    """Tests for SMTPTransport."""

    def test_send_uses_starttls_and_login(self, env_config, smtp_factory, smtp_instance):
        """Test a plain connection is upgraded with STARTTLS and authenticated."""
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory, timeout=12)

        transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        smtp_factory.assert_called_once_with("smtp.example.com", 587, timeout=12)
        smtp_instance.starttls.assert_called_once()
        smtp_instance.login.assert_called_once_with("hr@example.com", "secret123")
        smtp_instance.send_message.assert_called_once()

    def test_message_headers_and_html_part(self, env_config, smtp_factory, smtp_instance):
        """Test the message carries subject, sender, recipient and an HTML alternative."""
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        message = smtp_instance.send_message.call_args[0][0]
        assert message["Subject"] == "Hello"
        assert message["To"] == "erin@example.com"
        assert message["From"] == "Workseed HR <hr@example.com>"
        html_part = message.get_body(preferencelist=("html",))
        assert "<p>Hi</p>" in html_part.get_content()

    def test_no_starttls_when_disabled(self, smtp_factory, smtp_instance):
        """Test SMTP_USE_TLS=false skips STARTTLS."""
        env = EnvironmentConfig(
            smtp_host="localhost", smtp_port=25, smtp_user="u@x.io", smtp_pass="p",
            smtp_use_tls=False,
        )
        transport = SMTPTransport(env, smtp_factory=smtp_factory)

        transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        smtp_instance.starttls.assert_not_called()

    def test_implicit_tls_on_port_465(self, env_config_implicit_tls, smtp_instance):
        """Test port 465 uses SMTP_SSL instead of STARTTLS."""
        smtp_factory = Mock()
        ssl_factory = Mock(return_value=smtp_instance)
        transport = SMTPTransport(
            env_config_implicit_tls, smtp_factory=smtp_factory, smtp_ssl_factory=ssl_factory
        )

        transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        smtp_factory.assert_not_called()
        ssl_factory.assert_called_once()
        assert ssl_factory.call_args[0] == ("smtp.gmail.com", 465)
        smtp_instance.starttls.assert_not_called()
        smtp_instance.login.assert_called_once_with("hr@gmail.com", "apppassword")

    def test_connection_is_reused(self, env_config, smtp_factory, smtp_instance):
        """Test consecutive sends share one connection."""
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        transport.send_mail("a@example.com", "One", "<p>1</p>")
        transport.send_mail("b@example.com", "Two", "<p>2</p>")

        assert smtp_factory.call_count == 1
        assert smtp_instance.send_message.call_count == 2

    def test_reconnects_after_server_disconnect(self, env_config, smtp_instance):
        """Test a dropped connection is reopened and the send retried once."""
        stale = MagicMock()
        stale.send_message.side_effect = smtplib.SMTPServerDisconnected("gone")
        smtp_factory = Mock(side_effect=[stale, smtp_instance])
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        assert smtp_factory.call_count == 2
        smtp_instance.send_message.assert_called_once()

    def test_smtp_error_is_wrapped(self, env_config, smtp_factory, smtp_instance):
        """Test SMTP failures surface as TransportError and drop the connection."""
        smtp_instance.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        with pytest.raises(TransportError, match="SMTP error"):
            transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        smtp_instance.close.assert_called_once()

    def test_auth_failure_is_wrapped(self, env_config, smtp_factory, smtp_instance):
        """Test a login failure surfaces as TransportError."""
        smtp_instance.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        with pytest.raises(TransportError, match="SMTP connection failed"):
            transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

    def test_network_error_is_wrapped(self, env_config):
        """Test socket errors surface as TransportError."""
        smtp_factory = Mock(side_effect=ConnectionRefusedError("refused"))
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        with pytest.raises(TransportError, match="Network error"):
            transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

    def test_send_gives_up_while_connection_is_busy(self, env_config, smtp_factory, smtp_instance):
        """Test a send waiting on a connection held by a hung send raises and never delivers."""
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory, timeout=0.05)
        transport._lock.acquire()

        try:
            with pytest.raises(TransportTimeoutError, match="busy"):
                transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")
        finally:
            transport._lock.release()

        smtp_instance.send_message.assert_not_called()

    def test_unconfigured_transport_refuses_to_send(self, smtp_factory):
        """Test sending without settings raises TransportNotConfiguredError."""
        transport = SMTPTransport(EnvironmentConfig(), smtp_factory=smtp_factory)

        assert transport.is_configured() is False
        with pytest.raises(TransportNotConfiguredError):
            transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")
        smtp_factory.assert_not_called()

    def test_health_check(self, env_config, smtp_factory, smtp_instance):
        """Test health check reports the NOOP status."""
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        assert transport.health_check() is True

        smtp_instance.noop.side_effect = smtplib.SMTPServerDisconnected("gone")
        assert transport.health_check() is False

    def test_health_check_connection_failure(self, env_config):
        """Test a server that cannot be reached is reported unhealthy instead of raising."""
        smtp_factory = Mock(side_effect=ConnectionRefusedError("refused"))
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)

        assert transport.health_check() is False

    def test_health_check_unconfigured(self, smtp_factory):
        """Test an unconfigured transport is never healthy."""
        assert SMTPTransport(EnvironmentConfig(), smtp_factory=smtp_factory).health_check() is False

    def test_close_quits_connection(self, env_config, smtp_factory, smtp_instance):
        """Test close() sends QUIT and forgets the connection."""
        transport = SMTPTransport(env_config, smtp_factory=smtp_factory)
        transport.connect()

        transport.close()
        transport.close()

        smtp_instance.quit.assert_called_once()


class TestConsoleTransport:
    """Tests for the logging transport."""

    def test_console_transport_logs_email(self, caplog):
        """Test the console transport logs instead of sending."""
        transport = ConsoleTransport()

        with caplog.at_level("INFO"):
            transport.send_mail("erin@example.com", "Hello", "<p>Hi</p>")

        assert transport.is_configured() is True
        assert "erin@example.com" in caplog.text


class TestSenderAddress:
    """Tests for build_sender_address."""

    def test_smtp_from_wins(self):
        """Test SMTP_FROM is preferred over the login."""
        env = EnvironmentConfig(smtp_host="h", smtp_user="login@example.com", smtp_from="hr@example.com")

        assert build_sender_address(env, "Workseed") == "Workseed <hr@example.com>"

    def test_falls_back_to_user(self):
        """Test the SMTP user is used when it is an address."""
        env = EnvironmentConfig(smtp_host="h", smtp_user="login@example.com", smtp_sender_name="HR Team")

        assert build_sender_address(env) == "HR Team <login@example.com>"

    def test_falls_back_to_noreply(self):
        """Test noreply at the host when no address is available."""
        env = EnvironmentConfig(smtp_host="mail.example.com", smtp_user="apikey")

        assert build_sender_address(env, "Workseed") == "Workseed <noreply@mail.example.com>"


class TestAddressCheck:
    """Tests for the pre-send address shape check."""

    @pytest.mark.parametrize(
        "address",
        ["erin@example.com", "first.last+tag@sub.example.co.uk"],
    )
    def test_valid_addresses(self, address):
        """Test ordinary addresses pass."""
        assert is_valid_address(address) is True

    @pytest.mark.parametrize(
        "address",
        ["", None, "plain", "no-at.example.com", "a@b", "a @example.com", "a@@example.com"],
    )
    def test_invalid_addresses(self, address):
        """Test malformed addresses fail."""
        assert is_valid_address(address) is False


class TestBuildTransport:
    """Tests for transport selection."""

    def test_smtp_when_configured(self, env_config):
        """Test configured SMTP settings select the SMTP transport."""
        assert isinstance(build_transport(env_config), SMTPTransport)

    def test_console_in_development_without_smtp(self):
        """Test development without SMTP logs emails to the console."""
        assert isinstance(build_transport(EnvironmentConfig(environment="local")), ConsoleTransport)

    def test_unconfigured_smtp_in_production(self):
        """Test production without SMTP keeps an unconfigured SMTP transport."""
        transport = build_transport(EnvironmentConfig(environment="production"))

        assert isinstance(transport, SMTPTransport)
        assert transport.is_configured() is False
