"""Recipient resolution for notifications.

Turns a notification type plus event context into the ordered, duplicate
free list of people who should receive an email. Explicit overrides on the
context win outright; otherwise the type's routing rule decides, walking
the organisational hierarchy of the event's subject.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from hrnotify.domain.models import (
    NotificationContext,
    NotificationType,
    Recipient,
    RecipientConfig,
    Role,
)
from hrnotify.persistence import (
    DirectoryRepository,
    NotificationRuleRepository,
    PersistenceError,
    PreferenceRepository,
    get_session,
)

from .models import RecipientResolutionError

logger = logging.getLogger(__name__)


_DEFAULT_RECIPIENT_CONFIGS: Dict[NotificationType, RecipientConfig] = {
    NotificationType.LEAVE_REQUEST_SUBMITTED: RecipientConfig(notify_requester=True),
    NotificationType.LEAVE_REQUEST_APPROVED: RecipientConfig(notify_requester=True),
    NotificationType.LEAVE_REQUEST_REJECTED: RecipientConfig(notify_requester=True),
    NotificationType.LEAVE_REQUEST_CANCELLED: RecipientConfig(
        notify_manager=True, notify_hr=True
    ),
    NotificationType.LEAVE_PENDING_APPROVAL: RecipientConfig(
        notify_manager=True, notify_team_lead=True, notify_hr=True
    ),
    NotificationType.REQUEST_SUBMITTED: RecipientConfig(notify_requester=True, notify_hr=True),
    NotificationType.REQUEST_APPROVED: RecipientConfig(notify_requester=True),
    NotificationType.REQUEST_REJECTED: RecipientConfig(notify_requester=True),
    # Announcements always carry explicit recipient ids
    NotificationType.ANNOUNCEMENT_PUBLISHED: RecipientConfig(),
    NotificationType.BIRTHDAY_REMINDER: RecipientConfig(notify_requester=True),
    NotificationType.WORK_ANNIVERSARY: RecipientConfig(notify_requester=True),
    NotificationType.ASSET_ASSIGNED: RecipientConfig(notify_requester=True),
    NotificationType.ASSET_RETURNED: RecipientConfig(notify_hr=True, notify_admin=True),
    NotificationType.WELCOME_EMAIL: RecipientConfig(notify_requester=True),
    NotificationType.PASSWORD_RESET: RecipientConfig(notify_requester=True),
    NotificationType.APPRECIATION: RecipientConfig(notify_requester=True),
    NotificationType.CUSTOM: RecipientConfig(),
}


def default_recipient_config(notification_type: NotificationType) -> RecipientConfig:
    """Routing flags a freshly installed system uses for ``notification_type``."""
    config = _DEFAULT_RECIPIENT_CONFIGS.get(NotificationType(notification_type))
    return config.model_copy() if config else RecipientConfig()


class _RecipientList:
    """Ordered recipients, deduplicated by case-insensitive email."""

    def __init__(self):
        self._seen = set()
        self.items: List[Recipient] = []

    def add(self, recipient: Optional[Recipient]) -> None:
        if recipient is None or not recipient.email:
            return
        key = recipient.dedup_key
        if key in self._seen:
            return
        self._seen.add(key)
        self.items.append(recipient)

    def extend(self, recipients: Iterable[Recipient]) -> None:
        for recipient in recipients:
            self.add(recipient)


class RecipientResolver:
    """Resolves notification recipients from rules, hierarchy and preferences."""

    def __init__(self, session_factory: Callable = get_session):
        self.session_factory = session_factory

    def resolve(
        self, notification_type: NotificationType, context: NotificationContext
    ) -> List[Recipient]:
        """Resolve the recipients for one event.

        Args:
            notification_type: Kind of event being announced
            context: Event details including subject, actor and overrides

        Returns:
            Recipients in resolution order, no two sharing an email

        Raises:
            RecipientResolutionError: If directory, rule or preference data
                cannot be read
        """
        notification_type = NotificationType(notification_type)
        try:
            with self.session_factory() as session:
                return self._resolve(session, notification_type, context)
        except PersistenceError as e:
            logger.error(
                f"Recipient resolution failed for {notification_type.value}: {e}",
                extra={
                    "event": "recipients.resolution_failed",
                    "notification_type": notification_type.value,
                },
            )
            raise RecipientResolutionError(
                f"Could not resolve recipients for {notification_type.value}: {e}"
            ) from e

    def _resolve(
        self, session, notification_type: NotificationType, context: NotificationContext
    ) -> List[Recipient]:
        directory = DirectoryRepository(session)
        recipients = _RecipientList()

        if context.custom_recipient_ids:
            users = directory.get_active_users(context.custom_recipient_ids)
            recipients.extend(user.as_recipient() for user in users)
            return recipients.items

        if context.custom_recipient_emails:
            recipients.extend(
                Recipient(email=email, name=email)
                for email in context.custom_recipient_emails
                if email and email.strip()
            )
            return recipients.items

        rule = NotificationRuleRepository(session).get_by_type(notification_type)
        if rule is None or not rule.is_active:
            logger.debug(
                f"No active rule for {notification_type.value}, notifying subject only",
                extra={"event": "recipients.default_rule", "notification_type": notification_type.value},
            )
            if context.subject_id and context.subject_email and context.subject_name:
                recipients.add(
                    Recipient(
                        user_id=context.subject_id,
                        email=context.subject_email,
                        name=context.subject_name,
                    )
                )
            return recipients.items

        config = rule.recipient_config
        hierarchy_user_id = context.hierarchy_user_id

        if config.notify_requester and context.subject_email and context.subject_name:
            recipients.add(
                Recipient(
                    user_id=context.subject_id,
                    email=context.subject_email,
                    name=context.subject_name,
                )
            )

        if config.notify_manager and hierarchy_user_id:
            recipients.add(_as_recipient(directory.get_manager(hierarchy_user_id)))

        if config.notify_team_lead and hierarchy_user_id:
            recipients.add(_as_recipient(directory.get_team_lead(hierarchy_user_id)))

        if config.notify_department_head and hierarchy_user_id:
            recipients.add(_as_recipient(directory.get_department_head(hierarchy_user_id)))

        if config.notify_hr:
            recipients.extend(u.as_recipient() for u in directory.get_active_users_by_role(Role.HR))

        if config.notify_admin:
            recipients.extend(
                u.as_recipient() for u in directory.get_active_users_by_role(Role.ADMIN)
            )

        if config.custom_recipients:
            recipients.extend(
                u.as_recipient() for u in directory.get_active_users(config.custom_recipients)
            )

        for role in config.resolved_roles():
            recipients.extend(u.as_recipient() for u in directory.get_active_users_by_role(role))

        return self._drop_opted_out(session, notification_type, recipients.items)

    def _drop_opted_out(
        self, session, notification_type: NotificationType, recipients: List[Recipient]
    ) -> List[Recipient]:
        disabled = PreferenceRepository(session).disabled_user_ids(
            (r.user_id for r in recipients if r.user_id), notification_type
        )
        if not disabled:
            return recipients

        kept = []
        for recipient in recipients:
            if recipient.user_id and recipient.user_id in disabled:
                logger.debug(
                    f"Recipient {recipient.user_id} disabled {notification_type.value} emails",
                    extra={"event": "recipients.opted_out", "user_id": recipient.user_id},
                )
                continue
            kept.append(recipient)
        return kept


def _as_recipient(user) -> Optional[Recipient]:
    return user.as_recipient() if user is not None else None
