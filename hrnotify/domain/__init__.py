"""Domain models for the notification delivery pipeline."""

from .models import (
    ALLOWED_TRANSITIONS,
    URGENT_PRIORITIES,
    DirectoryUser,
    EmailLog,
    EmailStatus,
    EmailTemplate,
    NotificationContext,
    NotificationPreference,
    NotificationRule,
    NotificationType,
    Priority,
    QueuedEmail,
    Recipient,
    RecipientConfig,
    Role,
    Scalar,
    UserStatus,
    can_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "URGENT_PRIORITIES",
    "DirectoryUser",
    "EmailLog",
    "EmailStatus",
    "EmailTemplate",
    "NotificationContext",
    "NotificationPreference",
    "NotificationRule",
    "NotificationType",
    "Priority",
    "QueuedEmail",
    "Recipient",
    "RecipientConfig",
    "Role",
    "Scalar",
    "UserStatus",
    "can_transition",
]
