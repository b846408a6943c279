"""Data access layer (repositories) for persistence operations.

Repositories wrap a session, speak domain models, and convert SQLAlchemy
failures into PersistenceError. Status changes on delivery records are
conditional UPDATEs: the WHERE clause carries the expected current status,
and the affected row count tells the caller whether the transition happened.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hrnotify.domain.models import (
    DirectoryUser,
    EmailLog,
    EmailStatus,
    EmailTemplate,
    NotificationPreference,
    NotificationRule,
    NotificationType,
    QueuedEmail,
    RecipientConfig,
    Role,
    UserStatus,
    can_transition,
)
from hrnotify.utils.timestamps import to_storage, utc_now

from .exceptions import DataIntegrityError, PersistenceError
from .schema import (
    DepartmentModel,
    EmailLogModel,
    EmailTemplateModel,
    NotificationPreferenceModel,
    NotificationRuleModel,
    TeamModel,
    UserModel,
)

logger = logging.getLogger(__name__)


class DirectoryRepository:
    """Read access to users, teams and departments.

    Every lookup used for recipient resolution returns active users only.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        try:
            user = self.session.get(UserModel, user_id)
            return user.to_domain() if user else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve user: {e}") from e

    def get_active_user(self, user_id: Optional[str]) -> Optional[DirectoryUser]:
        if not user_id:
            return None
        user = self.get_user(user_id)
        if user is None or not user.is_active:
            return None
        return user

    def get_active_users(self, user_ids: Sequence[str]) -> List[DirectoryUser]:
        """Active users among ``user_ids``, in the order the ids were given.

        Unknown and inactive ids are skipped.
        """
        if not user_ids:
            return []

        try:
            stmt = select(UserModel).where(
                UserModel.id.in_(list(user_ids)),
                UserModel.status == UserStatus.ACTIVE.value,
            )
            found = {row.id: row.to_domain() for row in self.session.execute(stmt).scalars()}
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving users {list(user_ids)}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve users: {e}") from e

        return [found[user_id] for user_id in dict.fromkeys(user_ids) if user_id in found]

    def get_active_users_by_role(self, role: Role) -> List[DirectoryUser]:
        try:
            stmt = (
                select(UserModel)
                .where(
                    UserModel.role == role.value,
                    UserModel.status == UserStatus.ACTIVE.value,
                )
                .order_by(UserModel.id.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving users with role {role.value}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve users by role: {e}") from e

    def get_manager(self, user_id: Optional[str]) -> Optional[DirectoryUser]:
        """Active direct manager of ``user_id``."""
        user = self.get_user(user_id) if user_id else None
        if user is None:
            return None
        return self.get_active_user(user.manager_id)

    def get_team_lead(self, user_id: Optional[str]) -> Optional[DirectoryUser]:
        """Active lead of the team ``user_id`` belongs to."""
        user = self.get_user(user_id) if user_id else None
        if user is None or not user.team_id:
            return None

        try:
            team = self.session.get(TeamModel, user.team_id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving team {user.team_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve team: {e}") from e

        return self.get_active_user(team.lead_id) if team else None

    def get_department_head(self, user_id: Optional[str]) -> Optional[DirectoryUser]:
        """Active head of the department ``user_id`` belongs to."""
        user = self.get_user(user_id) if user_id else None
        if user is None or not user.department_id:
            return None

        try:
            department = self.session.get(DepartmentModel, user.department_id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving department {user.department_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve department: {e}") from e

        return self.get_active_user(department.head_id) if department else None

    def add_user(self, user: DirectoryUser) -> DirectoryUser:
        try:
            model = UserModel.from_domain(user)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to add user {user.id}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding user {user.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add user: {e}") from e

    def add_team(self, team_id: str, name: str, lead_id: Optional[str] = None) -> None:
        try:
            self.session.add(TeamModel(id=team_id, name=name, lead_id=lead_id))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error adding team {team_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add team: {e}") from e

    def add_department(self, department_id: str, name: str, head_id: Optional[str] = None) -> None:
        try:
            self.session.add(DepartmentModel(id=department_id, name=name, head_id=head_id))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error adding department {department_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add department: {e}") from e


class NotificationRuleRepository:
    """Routing rules, one per notification type."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_type(self, notification_type: NotificationType) -> Optional[NotificationRule]:
        try:
            stmt = select(NotificationRuleModel).where(
                NotificationRuleModel.type == NotificationType(notification_type).value
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving rule for {notification_type}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification rule: {e}") from e

    def list_all(self) -> List[NotificationRule]:
        try:
            stmt = select(NotificationRuleModel).order_by(NotificationRuleModel.type)
            return [row.to_domain() for row in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing notification rules: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification rules: {e}") from e

    def upsert(
        self,
        notification_type: NotificationType,
        recipient_config,
        is_active: bool = True,
    ) -> NotificationRule:
        """Create or replace the rule for ``notification_type``.

        ``recipient_config`` may be a RecipientConfig or raw JSON; raw values
        are stored as given so partially valid admin input round-trips.
        """
        if isinstance(recipient_config, RecipientConfig):
            raw_config = recipient_config.to_storage()
        else:
            raw_config = recipient_config

        type_value = NotificationType(notification_type).value
        try:
            stmt = select(NotificationRuleModel).where(NotificationRuleModel.type == type_value)
            model = self.session.execute(stmt).scalar_one_or_none()
            if model is None:
                model = NotificationRuleModel(type=type_value)
                self.session.add(model)
            model.recipient_config = raw_config
            model.is_active = is_active
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to upsert rule for {type_value}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting rule for {type_value}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert notification rule: {e}") from e


class PreferenceRepository:
    """Per-user opt-outs. A missing record means email is enabled."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, notification_type: NotificationType) -> Optional[NotificationPreference]:
        try:
            stmt = select(NotificationPreferenceModel).where(
                NotificationPreferenceModel.user_id == user_id,
                NotificationPreferenceModel.type == NotificationType(notification_type).value,
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving preference for {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve preference: {e}") from e

    def disabled_user_ids(
        self, user_ids: Iterable[str], notification_type: NotificationType
    ) -> Set[str]:
        """Users among ``user_ids`` who explicitly disabled email for the type."""
        ids = [user_id for user_id in user_ids if user_id]
        if not ids:
            return set()

        try:
            stmt = select(NotificationPreferenceModel.user_id).where(
                NotificationPreferenceModel.user_id.in_(ids),
                NotificationPreferenceModel.type == NotificationType(notification_type).value,
                NotificationPreferenceModel.email_enabled.is_(False),
            )
            return set(self.session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving opt-outs for {notification_type}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve preferences: {e}") from e

    def set_email_enabled(
        self, user_id: str, notification_type: NotificationType, enabled: bool
    ) -> NotificationPreference:
        type_value = NotificationType(notification_type).value
        try:
            stmt = select(NotificationPreferenceModel).where(
                NotificationPreferenceModel.user_id == user_id,
                NotificationPreferenceModel.type == type_value,
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            if model is None:
                model = NotificationPreferenceModel(user_id=user_id, type=type_value)
                self.session.add(model)
            model.email_enabled = enabled
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            raise DataIntegrityError(f"Duplicate preference for {user_id}/{type_value}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving preference for {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save preference: {e}") from e


class TemplateRepository:
    """Admin-authored email templates."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, template_id: int) -> Optional[EmailTemplate]:
        """Template by id, active or not."""
        try:
            model = self.session.get(EmailTemplateModel, template_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving template {template_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve template: {e}") from e

    def get_active(self, notification_type: NotificationType) -> Optional[EmailTemplate]:
        """Most recently updated active template for the type, if any."""
        try:
            stmt = (
                select(EmailTemplateModel)
                .where(
                    EmailTemplateModel.type == NotificationType(notification_type).value,
                    EmailTemplateModel.is_active.is_(True),
                )
                .order_by(EmailTemplateModel.updated_at.desc(), EmailTemplateModel.id.desc())
                .limit(1)
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving template for {notification_type}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve template: {e}") from e

    def create(self, template: EmailTemplate) -> EmailTemplate:
        now = to_storage(utc_now())
        try:
            model = EmailTemplateModel(
                name=template.name,
                type=template.type.value,
                subject=template.subject,
                html_body=template.html_body,
                variables=dict(template.variables),
                is_active=template.is_active,
                created_at=now,
                updated_at=now,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error creating template {template.name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create template: {e}") from e


class EmailLogRepository:
    """Delivery records and their status transitions."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, email: QueuedEmail) -> EmailLog:
        """Insert a QUEUED delivery record carrying the rendered body."""
        now = to_storage(utc_now())
        try:
            model = EmailLogModel(
                template_id=email.template_id,
                recipient_id=email.recipient_id,
                recipient_email=email.recipient_email,
                recipient_name=email.recipient_name,
                subject=email.subject,
                type=email.type.value,
                entity_type=email.entity_type,
                entity_id=email.entity_id,
                html_body=email.html_body,
                meta=dict(email.metadata),
                status=EmailStatus.QUEUED.value,
                retry_count=0,
                created_at=now,
                updated_at=now,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(
                f"Error creating email log for {email.recipient_email}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to create email log: {e}") from e

    def get(self, log_id: int) -> Optional[EmailLog]:
        try:
            model = self.session.get(EmailLogModel, log_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving email log {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve email log: {e}") from e

    def select_queued(
        self,
        limit: int,
        max_retries: int,
        log_ids: Optional[Sequence[int]] = None,
    ) -> List[EmailLog]:
        """Oldest QUEUED records still under the retry bound."""
        try:
            stmt = select(EmailLogModel).where(
                EmailLogModel.status == EmailStatus.QUEUED.value,
                EmailLogModel.retry_count < max_retries,
            )
            if log_ids is not None:
                stmt = stmt.where(EmailLogModel.id.in_(list(log_ids)))
            stmt = stmt.order_by(
                EmailLogModel.created_at.asc(), EmailLogModel.id.asc()
            ).limit(limit)
            return [row.to_domain() for row in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error selecting queued emails: {e}", exc_info=True)
            raise PersistenceError(f"Failed to select queued emails: {e}") from e

    def claim(self, log_id: int, max_retries: int) -> bool:
        """Move QUEUED -> SENDING. True only for the caller whose update landed."""
        stmt = (
            _transition(EmailStatus.QUEUED, EmailStatus.SENDING)
            .where(
                EmailLogModel.id == log_id,
                EmailLogModel.retry_count < max_retries,
            )
            .values(status=EmailStatus.SENDING.value, updated_at=to_storage(utc_now()))
        )
        return self._execute_transition(stmt, log_id, "claim") == 1

    def mark_sent(self, log_id: int, sent_at: Optional[datetime] = None) -> bool:
        sent = to_storage(sent_at or utc_now())
        stmt = (
            _transition(EmailStatus.SENDING, EmailStatus.SENT)
            .where(EmailLogModel.id == log_id)
            .values(
                status=EmailStatus.SENT.value,
                sent_at=sent,
                error_message=None,
                updated_at=sent,
            )
        )
        return self._execute_transition(stmt, log_id, "mark_sent") == 1

    def record_failure(
        self, log_id: int, error_message: str, max_retries: int
    ) -> Optional[EmailStatus]:
        """Count a failed attempt on a SENDING record.

        The retry counter is incremented; the record returns to QUEUED while
        the new count is below ``max_retries`` and becomes FAILED otherwise.

        Returns:
            The resulting status, or None if the record was not SENDING
        """
        now = to_storage(utc_now())
        exhausted = EmailLogModel.retry_count + 1 >= max_retries
        stmt = (
            _transition(EmailStatus.SENDING, EmailStatus.QUEUED, EmailStatus.FAILED)
            .where(EmailLogModel.id == log_id)
            .values(
                retry_count=EmailLogModel.retry_count + 1,
                status=case(
                    (exhausted, EmailStatus.FAILED.value),
                    else_=EmailStatus.QUEUED.value,
                ),
                failed_at=case((exhausted, now), else_=None),
                error_message=error_message,
                updated_at=now,
            )
        )
        if self._execute_transition(stmt, log_id, "record_failure") != 1:
            return None

        status = self.session.execute(
            select(EmailLogModel.status).where(EmailLogModel.id == log_id)
        ).scalar_one()
        return EmailStatus(status)

    def mark_failed(self, log_id: int, error_message: str) -> bool:
        """SENDING -> FAILED without touching the retry counter."""
        now = to_storage(utc_now())
        stmt = (
            _transition(EmailStatus.SENDING, EmailStatus.FAILED)
            .where(EmailLogModel.id == log_id)
            .values(
                status=EmailStatus.FAILED.value,
                failed_at=now,
                error_message=error_message,
                updated_at=now,
            )
        )
        return self._execute_transition(stmt, log_id, "mark_failed") == 1

    def reset_failed(self, log_id: int) -> bool:
        """FAILED -> QUEUED with a fresh retry budget."""
        stmt = (
            _transition(EmailStatus.FAILED, EmailStatus.QUEUED)
            .where(EmailLogModel.id == log_id)
            .values(
                status=EmailStatus.QUEUED.value,
                retry_count=0,
                error_message=None,
                failed_at=None,
                updated_at=to_storage(utc_now()),
            )
        )
        return self._execute_transition(stmt, log_id, "reset_failed") == 1

    def requeue_stale(self, claimed_before: datetime) -> int:
        """Return SENDING records last touched before ``claimed_before`` to QUEUED."""
        stmt = (
            _transition(EmailStatus.SENDING, EmailStatus.QUEUED)
            .where(EmailLogModel.updated_at < to_storage(claimed_before))
            .values(status=EmailStatus.QUEUED.value, updated_at=to_storage(utc_now()))
        )
        return self._execute_transition(stmt, None, "requeue_stale")

    def list_logs(
        self,
        status: Optional[EmailStatus] = None,
        notification_type: Optional[NotificationType] = None,
        recipient_email: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[EmailLog], int]:
        """Filtered page of records, newest first, plus the total match count."""
        conditions = []
        if status is not None:
            conditions.append(EmailLogModel.status == EmailStatus(status).value)
        if notification_type is not None:
            conditions.append(EmailLogModel.type == NotificationType(notification_type).value)
        if recipient_email:
            conditions.append(
                EmailLogModel.recipient_email.icontains(recipient_email, autoescape=True)
            )
        if start_date is not None:
            conditions.append(EmailLogModel.created_at >= to_storage(start_date))
        if end_date is not None:
            conditions.append(EmailLogModel.created_at <= to_storage(end_date))

        try:
            total = self.session.execute(
                select(func.count(EmailLogModel.id)).where(*conditions)
            ).scalar_one()

            stmt = (
                select(EmailLogModel)
                .where(*conditions)
                .order_by(EmailLogModel.created_at.desc(), EmailLogModel.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            logs = [row.to_domain() for row in self.session.execute(stmt).scalars()]
            return logs, total
        except SQLAlchemyError as e:
            logger.error(f"Error listing email logs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list email logs: {e}") from e

    def count_by_status(self) -> Dict[EmailStatus, int]:
        try:
            stmt = select(EmailLogModel.status, func.count(EmailLogModel.id)).group_by(
                EmailLogModel.status
            )
            counts = {status: 0 for status in EmailStatus}
            for status, count in self.session.execute(stmt):
                counts[EmailStatus(status)] = count
            return counts
        except SQLAlchemyError as e:
            logger.error(f"Error counting email logs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count email logs: {e}") from e

    def count_sent_since(self, since: datetime) -> int:
        return self._count_since(EmailStatus.SENT, EmailLogModel.sent_at, since)

    def count_failed_since(self, since: datetime) -> int:
        return self._count_since(EmailStatus.FAILED, EmailLogModel.failed_at, since)

    def pending_count(self) -> int:
        try:
            stmt = select(func.count(EmailLogModel.id)).where(
                EmailLogModel.status == EmailStatus.QUEUED.value
            )
            return self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Error counting pending emails: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count pending emails: {e}") from e

    def _count_since(self, status: EmailStatus, column, since: datetime) -> int:
        try:
            stmt = select(func.count(EmailLogModel.id)).where(
                EmailLogModel.status == status.value,
                column >= to_storage(since),
            )
            return self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {status.value} emails: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count {status.value} emails: {e}") from e

    def _execute_transition(self, stmt, log_id: Optional[int], operation: str) -> int:
        try:
            result = self.session.execute(
                stmt.execution_options(synchronize_session=False)
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(
                f"Error during {operation} for email log {log_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to {operation.replace('_', ' ')}: {e}") from e


def _transition(source: EmailStatus, *targets: EmailStatus):
    """UPDATE of email_logs guarded on the record still being in ``source``.

    Raises:
        ValueError: If any target is not a legal move from ``source``
    """
    for target in targets:
        if not can_transition(source, target):
            raise ValueError(f"Illegal email status transition {source.value} -> {target.value}")
    return update(EmailLogModel).where(EmailLogModel.status == source.value)
