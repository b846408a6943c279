"""Queued transactional email delivery for the HR application."""

__version__ = "0.1.0"
