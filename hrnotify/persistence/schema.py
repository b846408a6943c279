"""Database schema definition and ORM models.

ORM models convert to and from the pydantic domain models in
hrnotify.domain.models. Timestamps are stored as fixed-width ISO 8601
strings (see hrnotify.utils.timestamps) so ORDER BY on them is chronological.
"""

import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from hrnotify.domain.models import (
    DirectoryUser,
    EmailLog,
    EmailStatus,
    EmailTemplate,
    NotificationPreference,
    NotificationRule,
    NotificationType,
    RecipientConfig,
    Role,
    UserStatus,
)
from hrnotify.utils.timestamps import from_storage

logger = logging.getLogger(__name__)

Base = declarative_base()


class UserModel(Base):
    """Directory user. Owned by the HR application; read by the resolver."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default=Role.EMPLOYEE.value)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    manager_id = Column(String(64), nullable=True)
    team_id = Column(String(64), nullable=True)
    department_id = Column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_users_role_status", "role", "status"),
    )

    def to_domain(self) -> DirectoryUser:
        return DirectoryUser(
            id=self.id,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name or "",
            role=Role(self.role),
            status=UserStatus(self.status),
            manager_id=self.manager_id,
            team_id=self.team_id,
            department_id=self.department_id,
        )

    @classmethod
    def from_domain(cls, user: DirectoryUser) -> "UserModel":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role.value,
            status=user.status.value,
            manager_id=user.manager_id,
            team_id=user.team_id,
            department_id=user.department_id,
        )


class TeamModel(Base):
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    lead_id = Column(String(64), nullable=True)


class DepartmentModel(Base):
    __tablename__ = "departments"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    head_id = Column(String(64), nullable=True)


class NotificationRuleModel(Base):
    """Routing rule, one per notification type.

    recipient_config is free-form JSON edited by admins; it is parsed
    leniently through RecipientConfig.from_raw.
    """

    __tablename__ = "notification_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(50), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    recipient_config = Column(JSON, nullable=True)

    def to_domain(self) -> NotificationRule:
        return NotificationRule(
            id=self.id,
            type=NotificationType(self.type),
            is_active=bool(self.is_active),
            recipient_config=RecipientConfig.from_raw(self.recipient_config),
        )


class NotificationPreferenceModel(Base):
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    type = Column(String(50), nullable=False)
    email_enabled = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("user_id", "type", name="uq_preferences_user_type"),
    )

    def to_domain(self) -> NotificationPreference:
        return NotificationPreference(
            user_id=self.user_id,
            type=NotificationType(self.type),
            email_enabled=bool(self.email_enabled),
        )


class EmailTemplateModel(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    subject = Column(Text, nullable=False)
    html_body = Column(Text, nullable=False)
    variables = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_templates_type_active", "type", "is_active"),
    )

    def to_domain(self) -> EmailTemplate:
        return EmailTemplate(
            id=self.id,
            name=self.name,
            type=NotificationType(self.type),
            subject=self.subject,
            html_body=self.html_body,
            variables=self.variables or {},
            is_active=bool(self.is_active),
        )


class EmailLogModel(Base):
    """Delivery record. Created QUEUED, never deleted.

    The ``metadata`` column is mapped to the ``meta`` attribute because
    declarative models reserve the ``metadata`` name.
    """

    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_id = Column(Integer, nullable=True)
    recipient_id = Column(String(64), nullable=True)
    recipient_email = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    subject = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    html_body = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    status = Column(String(20), nullable=False, default=EmailStatus.QUEUED.value)
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    sent_at = Column(String(50), nullable=True)
    failed_at = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_email_logs_status_created", "status", "created_at"),
        Index("idx_email_logs_created", "created_at"),
        Index("idx_email_logs_recipient", "recipient_email"),
    )

    def to_domain(self) -> EmailLog:
        return EmailLog(
            id=self.id,
            template_id=self.template_id,
            recipient_id=self.recipient_id,
            recipient_email=self.recipient_email,
            recipient_name=self.recipient_name,
            subject=self.subject,
            type=NotificationType(self.type),
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            html_body=self.html_body,
            metadata=self.meta or {},
            status=EmailStatus(self.status),
            retry_count=self.retry_count,
            error_message=self.error_message,
            sent_at=from_storage(self.sent_at),
            failed_at=from_storage(self.failed_at),
            created_at=from_storage(self.created_at),
            updated_at=from_storage(self.updated_at),
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(
            "Database schema ready",
            extra={"event": "database.schema.ready", "tables": ",".join(tables)},
        )
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise


__all__ = [
    "Base",
    "UserModel",
    "TeamModel",
    "DepartmentModel",
    "NotificationRuleModel",
    "NotificationPreferenceModel",
    "EmailTemplateModel",
    "EmailLogModel",
    "create_schema",
]
