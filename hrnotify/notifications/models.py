"""Data models and exceptions for the notification service.

This module defines result types and custom exceptions used throughout
the notification pipeline.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from hrnotify.domain.models import EmailLog, EmailStatus, NotificationType


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class RecipientResolutionError(NotificationError):
    """Raised when the directory or rule data needed to pick recipients cannot be read."""

    pass


class TransportError(NotificationError):
    """Raised when the mail transport fails to hand off a message."""

    pass


class TransportTimeoutError(TransportError):
    """Raised when a send does not complete within the configured timeout."""

    pass


class TransportNotConfiguredError(TransportError):
    """Raised when a send is attempted on a transport without settings."""

    pass


class MissingContentError(NotificationError):
    """Raised when a delivery record has no rendered body to send."""

    pass


@dataclass
class QueueProcessResult:
    """Counts from one pass over the delivery queue.

    Attributes:
        processed: Records this pass claimed and attempted
        sent: Records that reached SENT
        failed: Attempts that failed (retry scheduled or terminal)
        skipped: Records another worker claimed first
    """

    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class EmailStats:
    """Delivery counts for operators."""

    total: int = 0
    queued: int = 0
    sending: int = 0
    sent: int = 0
    failed: int = 0
    today_sent: int = 0
    today_failed: int = 0
    week_sent: int = 0
    week_failed: int = 0


@dataclass
class EmailLogFilter:
    status: Optional[EmailStatus] = None
    type: Optional[NotificationType] = None
    recipient_email: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass
class EmailLogPage:
    logs: List[EmailLog]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)


@dataclass
class SyncResult:
    """Outcome of a synchronous notify call.

    ``configured`` is False when no transport settings exist; nothing is
    queued in that case.
    """

    success: bool
    sent_count: int = 0
    failed_count: int = 0
    configured: bool = True
    message: str = ""


@dataclass
class TemplateValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class RenderedEmail:
    subject: str
    html: str


@dataclass(frozen=True)
class DefaultTemplate:
    """Built-in template used when no active admin template exists.

    ``variables`` maps each placeholder name to a human description.
    """

    subject: str
    html_body: str
    variables: Dict[str, str] = field(default_factory=dict)
