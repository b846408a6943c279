"""Shared fixtures: a file-backed SQLite database and a queue wired to a fake transport."""

import pytest

from hrnotify.config.models import QueueConfig
from hrnotify.logging.context import clear_log_context
from hrnotify.notifications.queue import EmailQueue
from hrnotify.persistence import close_database, init_database

from tests.helpers import RecordingTransport


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def database(tmp_path):
    """Initialize a fresh database for one test."""
    init_database(f"sqlite:///{tmp_path / 'notifications.db'}")
    yield
    close_database()


@pytest.fixture
def queue_config():
    return QueueConfig(send_delay_ms=0, send_timeout_seconds=5)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def queue(database, transport, queue_config):
    email_queue = EmailQueue(transport, config=queue_config)
    yield email_queue
    email_queue.shutdown()
