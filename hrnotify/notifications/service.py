"""Notification service: the entry point business code calls.

This module provides the NotificationService class that orchestrates the
notification pipeline: recipient resolution, template rendering, queuing
one delivery record per recipient, and (for urgent events or synchronous
callers) kicking off delivery right away.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional, Sequence, Union

from hrnotify.domain.models import (
    URGENT_PRIORITIES,
    EmailStatus,
    NotificationContext,
    NotificationType,
    QueuedEmail,
    Recipient,
)
from hrnotify.logging import get_logger
from hrnotify.logging.context import log_context
from hrnotify.persistence import PersistenceError
from hrnotify.utils.timestamps import utc_now

from . import payloads
from .models import RecipientResolutionError, SyncResult
from .queue import EmailQueue
from .recipients import RecipientResolver
from .templates import TemplateEngine

logger = get_logger(__name__, component="notification")

URGENT_BATCH_SIZE = 10
TEST_EMAIL_SUBJECT = "Test Email - HRM System"

LEAVE_TYPES = frozenset(
    {
        NotificationType.LEAVE_REQUEST_SUBMITTED,
        NotificationType.LEAVE_REQUEST_APPROVED,
        NotificationType.LEAVE_REQUEST_REJECTED,
        NotificationType.LEAVE_REQUEST_CANCELLED,
        NotificationType.LEAVE_PENDING_APPROVAL,
    }
)
REQUEST_TYPES = frozenset(
    {
        NotificationType.REQUEST_SUBMITTED,
        NotificationType.REQUEST_APPROVED,
        NotificationType.REQUEST_REJECTED,
    }
)
ASSET_TYPES = frozenset({NotificationType.ASSET_ASSIGNED, NotificationType.ASSET_RETURNED})


class NotificationService:
    """Façade over resolver, template engine and queue.

    ``notify`` never blocks the caller and never raises: the work runs on a
    small thread pool and failures are logged. ``notify_sync`` queues and
    delivers in the caller's thread and reports the outcome.
    """

    def __init__(
        self,
        queue: EmailQueue,
        templates: Optional[TemplateEngine] = None,
        resolver: Optional[RecipientResolver] = None,
        max_workers: int = 4,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification service.

        Args:
            queue: Delivery queue (owns the transport reference)
            templates: Template engine (creates default if None)
            resolver: Recipient resolver (creates default if None)
            max_workers: Threads for fire-and-forget notifications
            logger_instance: Logger instance (uses module logger if None)
        """
        self.queue = queue
        self.templates = templates or TemplateEngine()
        self.resolver = resolver or RecipientResolver()
        self.logger = logger_instance or logger
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="hrnotify-notify"
        )

    def notify(self, notification_type: NotificationType, context: NotificationContext) -> Future:
        """Queue a notification in the background.

        Returns:
            Future resolving to the created delivery record ids (empty on failure)
        """
        try:
            notification_type = NotificationType(notification_type)
            return self._executor.submit(self._queue_safely, notification_type, context)
        except (ValueError, RuntimeError) as e:
            self.logger.error(
                f"Notification not accepted: {e}",
                extra={
                    "event": "notification.rejected",
                    "notification_type": getattr(notification_type, "value", notification_type),
                },
            )
            return _finished([])

    def queue_notification(
        self, notification_type: NotificationType, context: NotificationContext
    ) -> List[int]:
        """Resolve recipients, render and queue one email per recipient.

        Returns:
            Ids of the delivery records created
        """
        return self._queue(NotificationType(notification_type), context, nudge=True)

    def notify_sync(
        self, notification_type: NotificationType, context: NotificationContext
    ) -> SyncResult:
        """Queue a notification and deliver it before returning."""
        notification_type = NotificationType(notification_type)

        if not self.queue.is_transport_configured():
            return SyncResult(
                success=False,
                configured=False,
                message="Email transport is not configured",
            )

        try:
            log_ids = self._queue(notification_type, context, nudge=False)
            if not log_ids:
                return SyncResult(success=True, message="No recipients to notify")

            result = self.queue.process_batch(limit=len(log_ids), log_ids=log_ids)
        except Exception as e:
            self.logger.error(
                f"Synchronous notification failed: {e}",
                exc_info=True,
                extra={"event": "notification.sync_failed", "notification_type": notification_type.value},
            )
            return SyncResult(success=False, message=f"Notification failed: {e}")

        return SyncResult(
            success=result.failed == 0,
            sent_count=result.sent,
            failed_count=result.failed,
            message=f"Sent {result.sent} of {len(log_ids)} email(s)",
        )

    def _queue_safely(
        self, notification_type: NotificationType, context: NotificationContext
    ) -> List[int]:
        try:
            return self._queue(notification_type, context, nudge=True)
        except Exception as e:
            self.logger.error(
                f"Failed to queue {notification_type.value} notification: {e}",
                exc_info=True,
                extra={"event": "notification.queue_failed", "notification_type": notification_type.value},
            )
            return []

    def _queue(
        self, notification_type: NotificationType, context: NotificationContext, nudge: bool
    ) -> List[int]:
        with log_context(notification_type=notification_type.value):
            try:
                recipients = self.resolver.resolve(notification_type, context)
            except RecipientResolutionError as e:
                self.logger.error(
                    f"Dropping notification, recipients could not be resolved: {e}",
                    extra={"event": "notification.dropped"},
                )
                return []

            if not recipients:
                self.logger.debug(
                    "No recipients for notification",
                    extra={"event": "notification.no_recipients"},
                )
                return []

            template = self.templates.resolve_template(notification_type)
            template_id = getattr(template, "id", None)

            log_ids = []
            for recipient in recipients:
                log_id = self._queue_for_recipient(
                    notification_type, context, recipient, template, template_id
                )
                if log_id is not None:
                    log_ids.append(log_id)

            self.logger.info(
                f"Queued {len(log_ids)} of {len(recipients)} {notification_type.value} email(s)",
                extra={
                    "event": "notification.queued",
                    "recipient_count": len(recipients),
                    "queued_count": len(log_ids),
                },
            )

        if nudge and log_ids and context.priority in URGENT_PRIORITIES:
            try:
                self._executor.submit(self._process_urgent)
            except RuntimeError as e:
                # Records are queued; the worker will deliver them
                self.logger.warning(
                    f"Urgent delivery not started: {e}",
                    extra={"event": "notification.urgent_skipped"},
                )

        return log_ids

    def _queue_for_recipient(
        self,
        notification_type: NotificationType,
        context: NotificationContext,
        recipient: Recipient,
        template,
        template_id: Optional[int],
    ) -> Optional[int]:
        variables = self.templates.build_variables(
            recipient.name, recipient.email, context.variables
        )
        rendered = self.templates.render_template(template, variables)

        email = QueuedEmail(
            recipient_email=recipient.email,
            recipient_name=recipient.name,
            recipient_id=recipient.user_id,
            subject=rendered.subject,
            html_body=rendered.html,
            type=notification_type,
            template_id=template_id,
            entity_type=context.entity_type,
            entity_id=context.entity_id,
            metadata={
                "priority": context.priority.value,
                "actorId": context.actor_id,
                "actorName": context.actor_name,
            },
        )
        try:
            return self.queue.enqueue(email)
        except PersistenceError as e:
            self.logger.error(
                f"Failed to queue email for {recipient.email}: {e}",
                extra={"event": "notification.enqueue_failed"},
            )
            return None

    def _process_urgent(self) -> None:
        try:
            self.queue.process_batch(URGENT_BATCH_SIZE)
        except Exception as e:
            self.logger.error(
                f"Urgent delivery run failed: {e}",
                exc_info=True,
                extra={"event": "notification.urgent_failed"},
            )

    # Typed helpers for the events the HR application raises

    def send_welcome_email(
        self, user_id: str, email: str, first_name: str, last_name: str, employee_id: str
    ) -> Future:
        return self.notify(
            NotificationType.WELCOME_EMAIL,
            payloads.welcome_context(user_id, email, first_name, last_name, employee_id),
        )

    def send_leave_notification(self, notification_type: NotificationType, **details) -> Future:
        """Notify about a leave request; ``details`` as for payloads.leave_context."""
        notification_type = NotificationType(notification_type)
        if notification_type not in LEAVE_TYPES:
            raise ValueError(f"{notification_type.value} is not a leave notification")
        return self.notify(notification_type, payloads.leave_context(**details))

    def send_request_notification(self, notification_type: NotificationType, **details) -> Future:
        notification_type = NotificationType(notification_type)
        if notification_type not in REQUEST_TYPES:
            raise ValueError(f"{notification_type.value} is not a request notification")
        return self.notify(notification_type, payloads.request_context(**details))

    def send_announcement(
        self,
        notice_id: str,
        title: str,
        content: str,
        notice_type: str,
        published_by: str,
        recipient_ids: Optional[Sequence[str]] = None,
    ) -> Future:
        return self.notify(
            NotificationType.ANNOUNCEMENT_PUBLISHED,
            payloads.announcement_context(
                notice_id, title, content, notice_type, published_by, recipient_ids
            ),
        )

    def send_asset_notification(self, notification_type: NotificationType, **details) -> Future:
        notification_type = NotificationType(notification_type)
        if notification_type not in ASSET_TYPES:
            raise ValueError(f"{notification_type.value} is not an asset notification")
        return self.notify(notification_type, payloads.asset_context(**details))

    def send_appreciation(
        self,
        recipient_id: str,
        recipient_email: str,
        recipient_name: str,
        sender_name: str,
        message: str,
    ) -> Future:
        return self.notify(
            NotificationType.APPRECIATION,
            payloads.appreciation_context(
                recipient_id, recipient_email, recipient_name, sender_name, message
            ),
        )

    def send_custom_email(
        self,
        to: Union[str, Sequence[str]],
        subject: str,
        content: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> List[int]:
        """Queue an ad-hoc email outside the rule system.

        ``content`` is HTML placed directly inside the shared layout.
        """
        addresses = [to] if isinstance(to, str) else list(to)
        html = self.templates.wrap_in_layout(content)

        log_ids = []
        for address in addresses:
            email = QueuedEmail(
                recipient_email=address,
                subject=subject,
                html_body=html,
                type=NotificationType.CUSTOM,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            try:
                log_ids.append(self.queue.enqueue(email))
            except PersistenceError as e:
                self.logger.error(
                    f"Failed to queue custom email for {address}: {e}",
                    extra={"event": "notification.enqueue_failed"},
                )
        return log_ids

    def send_test_email(self, address: str) -> SyncResult:
        """Send a test message immediately to check transport settings."""
        if not self.queue.is_transport_configured():
            return SyncResult(
                success=False,
                configured=False,
                message="SMTP not configured. Set SMTP_HOST, SMTP_USER and SMTP_PASS.",
            )

        content = (
            '<h2 class="title">Test Email</h2>'
            "<p>This is a test email to verify your email configuration is working correctly.</p>"
            f'<p style="color: #666; font-size: 12px;">Sent at: {utc_now().isoformat()}</p>'
        )
        log_ids = self.send_custom_email(address, TEST_EMAIL_SUBJECT, content)
        if not log_ids:
            return SyncResult(success=False, message="Failed to queue test email")

        result = self.queue.process_batch(limit=1, log_ids=log_ids)
        log = self.queue.get_log(log_ids[0])
        if log is not None and log.status == EmailStatus.SENT:
            return SyncResult(success=True, sent_count=1, message="Test email sent successfully!")

        error = log.error_message if log is not None else None
        return SyncResult(
            success=False,
            failed_count=result.failed,
            message=error or "Email failed to send. Check logs for details.",
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting background work, optionally draining what is pending."""
        self._executor.shutdown(wait=wait)


def _finished(result) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future
