"""Persistence layer exceptions.

Every database failure surfaces as a PersistenceError subclass so the
delivery engine and CLI can catch storage problems with one clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the engine cannot be created, reached or used before init.

    Examples:
    - Invalid DATABASE_URL
    - SQLite file directory not writable
    - get_session() called before init_database()
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations (duplicate rule type, duplicate preference)."""

    pass
