"""Persistence layer: engine/session lifecycle, ORM schema and repositories.

Example usage:
    >>> from hrnotify.persistence import init_database, get_session, EmailLogRepository
    >>>
    >>> init_database("sqlite:///./data/notifications.db")
    >>>
    >>> with get_session() as session:
    ...     logs = EmailLogRepository(session)
    ...     pending = logs.pending_count()
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
)
from .repositories import (
    DirectoryRepository,
    EmailLogRepository,
    NotificationRuleRepository,
    PreferenceRepository,
    TemplateRepository,
)

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "DirectoryRepository",
    "NotificationRuleRepository",
    "PreferenceRepository",
    "TemplateRepository",
    "EmailLogRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
]
