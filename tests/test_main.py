"""Tests for the command-line entry point.

Each test runs main() against a temporary config file and SQLite database
with no SMTP settings, so the console transport stands in for a mail server.
"""

import logging
from unittest.mock import Mock

import pytest

from hrnotify import main as main_module
from hrnotify.config.environment import EnvironmentConfig
from hrnotify.config.models import AppConfig
from hrnotify.domain.models import EmailStatus, NotificationType
from hrnotify.main import build_parser, build_runtime, check_transport, main
from hrnotify.persistence import (
    EmailLogRepository,
    NotificationRuleRepository,
    close_database,
    get_session,
    init_database,
)

from tests.helpers import queued_email

ENV_VARS = [
    "SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "SMTP_FROM", "SMTP_SENDER_NAME",
    "SMTP_USE_TLS", "LOG_LEVEL", "ENVIRONMENT", "APP_NAME", "APP_URL",
]


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("queue:\n  batch_size: 10\nlogging:\n  format: json\n")
    return path


def run(config_file, *args):
    return main(["--config", str(config_file), *args])


def insert_email(db_url, failed=False):
    """Write one delivery record before main() opens the database."""
    init_database(db_url)
    try:
        with get_session() as session:
            repo = EmailLogRepository(session)
            log_id = repo.create(queued_email()).id
            if failed:
                repo.claim(log_id, max_retries=3)
                repo.mark_failed(log_id, "Connection refused")
        return log_id
    finally:
        close_database()


def read_log(db_url, log_id):
    init_database(db_url)
    try:
        with get_session() as session:
            return EmailLogRepository(session).get(log_id)
    finally:
        close_database()


class TestParser:
    """Tests for argument parsing."""

    def test_commands_are_mutually_exclusive(self):
        """Test two commands at once are rejected."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--stats", "--process-once"])

    def test_defaults(self):
        """Test no arguments means daemon mode."""
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.retry is None
        assert not (args.stats or args.process_once or args.seed_rules)


class TestCommands:
    """Tests for one-shot operator commands."""

    def test_stats(self, db_url, config_file, capsys):
        """Test --stats prints counts and the transport in use."""
        insert_email(db_url)

        assert run(config_file, "--stats") == 0

        out = capsys.readouterr().out
        assert "Queued" in out
        assert "console (configured)" in out

    def test_seed_rules(self, db_url, config_file, capsys):
        """Test --seed-rules stores one rule per type and keeps them on rerun."""
        assert run(config_file, "--seed-rules") == 0
        assert run(config_file, "--seed-rules") == 0
        assert run(config_file, "--seed-rules", "--overwrite") == 0

        out = capsys.readouterr().out
        assert f"Seeded {len(NotificationType)} notification rule(s)" in out
        assert "Seeded 0 notification rule(s)" in out

        init_database(db_url)
        try:
            with get_session() as session:
                assert len(NotificationRuleRepository(session).list_all()) == len(NotificationType)
        finally:
            close_database()

    def test_process_once_delivers(self, db_url, config_file):
        """Test --process-once drains the queue through the console transport."""
        log_id = insert_email(db_url)

        assert run(config_file, "--process-once") == 0

        assert read_log(db_url, log_id).status == EmailStatus.SENT

    def test_retry_failed_email(self, db_url, config_file, capsys):
        """Test --retry requeues a FAILED record."""
        log_id = insert_email(db_url, failed=True)

        assert run(config_file, "--retry", str(log_id)) == 0

        assert f"Email {log_id} requeued" in capsys.readouterr().out
        log = read_log(db_url, log_id)
        assert log.status == EmailStatus.QUEUED
        assert log.retry_count == 0

    def test_retry_unknown_email(self, db_url, config_file, capsys):
        """Test --retry on an unknown id exits non-zero."""
        assert run(config_file, "--retry", "999") == 1

        assert "not found or not in FAILED state" in capsys.readouterr().err

    def test_send_test_with_console_transport(self, db_url, config_file, capsys):
        """Test --send-test succeeds when emails go to the log."""
        assert run(config_file, "--send-test", "ops@example.com") == 0

        assert "Test email sent successfully!" in capsys.readouterr().out

    def test_send_test_without_smtp_in_production(self, db_url, config_file, monkeypatch, capsys):
        """Test --send-test reports missing SMTP settings in production."""
        monkeypatch.setenv("ENVIRONMENT", "production")

        assert run(config_file, "--send-test", "ops@example.com") == 1

        assert "SMTP not configured" in capsys.readouterr().out


class TestStartupFailures:
    """Tests for configuration and startup errors."""

    def test_missing_config_file(self, db_url, tmp_path, capsys):
        """Test a missing config file exits with a configuration error."""
        assert main(["--config", str(tmp_path / "missing.yaml"), "--stats"]) == 1

        assert "Configuration Error" in capsys.readouterr().err

    def test_invalid_environment(self, db_url, config_file, monkeypatch, capsys):
        """Test invalid environment variables exit with a configuration error."""
        monkeypatch.setenv("SMTP_PORT", "smtp")

        assert run(config_file, "--stats") == 1

        assert "SMTP_PORT" in capsys.readouterr().err

    def test_database_failure_is_fatal(self, db_url, config_file, monkeypatch, capsys):
        """Test an unusable database URL exits non-zero."""
        monkeypatch.setenv("DATABASE_URL", "notadialect://nowhere")

        assert run(config_file, "--stats") == 1

        assert "Fatal error" in capsys.readouterr().err


class TestTransportCheck:
    """Tests for the startup transport check."""

    def test_build_runtime_checks_transport(self, db_url, monkeypatch):
        """Test the transport is health-checked once while the runtime is built."""
        transport = Mock()
        transport.name = "smtp"
        transport.health_check.return_value = False
        monkeypatch.setattr(main_module, "build_transport", Mock(return_value=transport))
        init_database(db_url)

        runtime = build_runtime(AppConfig(), EnvironmentConfig())
        try:
            transport.health_check.assert_called_once_with()
            assert runtime.transport is transport
        finally:
            runtime.close()

    def test_check_transport_reports_result(self):
        """Test check_transport returns what the transport reports."""
        healthy = Mock()
        healthy.name = "console"
        healthy.health_check.return_value = True
        broken = Mock()
        broken.name = "smtp"
        broken.health_check.return_value = False

        assert check_transport(healthy) is True
        assert check_transport(broken) is False


class TestDaemon:
    """Tests for daemon mode wiring."""

    def test_daemon_runs_scheduler_until_shutdown(self, db_url, config_file, monkeypatch):
        """Test daemon mode schedules the worker at the configured interval."""
        created = []

        class FakeScheduler:
            def __init__(self, job_callable, interval_seconds, shutdown_event):
                self.job_callable = job_callable
                self.interval_seconds = interval_seconds
                self.shutdown_event = shutdown_event
                created.append(self)

            def start(self):
                self.job_callable()
                self.shutdown_event.set()

            def shutdown(self, wait=False):
                self.shutdown_event.set()

        monkeypatch.setattr(main_module, "SchedulerService", FakeScheduler)
        monkeypatch.setattr(main_module.signal, "signal", lambda *args: None)
        log_id = insert_email(db_url)

        assert run(config_file) == 0

        assert created[0].interval_seconds == 30
        assert read_log(db_url, log_id).status == EmailStatus.SENT
