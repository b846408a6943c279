"""Email notification pipeline.

This module provides the complete notification pipeline:
- NotificationService: entry point for business events
- RecipientResolver: rule-driven recipient selection
- TemplateEngine: ``{{variable}}`` rendering inside a shared layout
- EmailQueue: durable queue with atomic claims and bounded retry
- Transports: SMTP delivery and a console fallback for development
"""

from .models import (
    DefaultTemplate,
    EmailLogFilter,
    EmailLogPage,
    EmailStats,
    MissingContentError,
    NotificationError,
    QueueProcessResult,
    RecipientResolutionError,
    RenderedEmail,
    SyncResult,
    TemplateValidation,
    TransportError,
    TransportNotConfiguredError,
    TransportTimeoutError,
)
from .queue import EmailQueue
from .recipients import RecipientResolver, default_recipient_config
from .service import NotificationService
from .templates import (
    TemplateEngine,
    get_default_template,
    parse_variables,
    render_variables,
    validate_template_syntax,
)
from .transport import (
    ConsoleTransport,
    SMTPTransport,
    Transport,
    build_sender_address,
    build_transport,
    is_valid_address,
)

__all__ = [
    # Main service
    "NotificationService",
    # Components
    "EmailQueue",
    "RecipientResolver",
    "TemplateEngine",
    "Transport",
    "SMTPTransport",
    "ConsoleTransport",
    # Results
    "QueueProcessResult",
    "EmailStats",
    "EmailLogFilter",
    "EmailLogPage",
    "SyncResult",
    "TemplateValidation",
    "RenderedEmail",
    "DefaultTemplate",
    # Exceptions
    "NotificationError",
    "RecipientResolutionError",
    "TransportError",
    "TransportTimeoutError",
    "TransportNotConfiguredError",
    "MissingContentError",
    # Utilities
    "build_transport",
    "build_sender_address",
    "is_valid_address",
    "default_recipient_config",
    "get_default_template",
    "parse_variables",
    "render_variables",
    "validate_template_syntax",
]
