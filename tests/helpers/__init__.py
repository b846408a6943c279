"""Test helper utilities for hrnotify tests."""

from .directory import seed_directory
from .polling import wait_for
from .transports import RecordingTransport, queued_email

__all__ = ["RecordingTransport", "queued_email", "seed_directory", "wait_for"]
