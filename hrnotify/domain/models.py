"""Core domain models for the notification delivery pipeline.

This module defines the data structures shared by every layer:
- NotificationType, EmailStatus, Priority, Role, UserStatus: closed enumerations
- NotificationContext: what a trigger hands to the notification service
- Recipient: one resolved delivery target
- RecipientConfig / NotificationRule / NotificationPreference: routing data
- EmailTemplate: an admin-authored template record
- QueuedEmail / EmailLog: a delivery record before and after persistence
- DirectoryUser: the slice of an employee record the resolver reads
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Scalar = Union[str, int, float, bool, None]


class NotificationType(str, Enum):
    """Business events that can produce a transactional email."""

    LEAVE_REQUEST_SUBMITTED = "LEAVE_REQUEST_SUBMITTED"
    LEAVE_REQUEST_APPROVED = "LEAVE_REQUEST_APPROVED"
    LEAVE_REQUEST_REJECTED = "LEAVE_REQUEST_REJECTED"
    LEAVE_REQUEST_CANCELLED = "LEAVE_REQUEST_CANCELLED"
    LEAVE_PENDING_APPROVAL = "LEAVE_PENDING_APPROVAL"
    REQUEST_SUBMITTED = "REQUEST_SUBMITTED"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    ANNOUNCEMENT_PUBLISHED = "ANNOUNCEMENT_PUBLISHED"
    BIRTHDAY_REMINDER = "BIRTHDAY_REMINDER"
    WORK_ANNIVERSARY = "WORK_ANNIVERSARY"
    ASSET_ASSIGNED = "ASSET_ASSIGNED"
    ASSET_RETURNED = "ASSET_RETURNED"
    WELCOME_EMAIL = "WELCOME_EMAIL"
    PASSWORD_RESET = "PASSWORD_RESET"
    APPRECIATION = "APPRECIATION"
    CUSTOM = "CUSTOM"


class EmailStatus(str, Enum):
    """Lifecycle states of a delivery record."""

    QUEUED = "QUEUED"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class Priority(str, Enum):
    """Delivery priority attached to a notification."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Role(str, Enum):
    """Organisational roles used for role-based fan-out."""

    ADMIN = "ADMIN"
    HR = "HR"
    MANAGER = "MANAGER"
    TEAM_LEAD = "TEAM_LEAD"
    EMPLOYEE = "EMPLOYEE"


class UserStatus(str, Enum):
    """Employment status of a directory user."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    TERMINATED = "TERMINATED"


# Legal status transitions for a single delivery record.
# SENDING -> QUEUED covers both retry after a failed attempt and
# recovery of a claim abandoned by a crashed worker.
ALLOWED_TRANSITIONS: Dict[EmailStatus, frozenset] = {
    EmailStatus.QUEUED: frozenset({EmailStatus.SENDING}),
    EmailStatus.SENDING: frozenset(
        {EmailStatus.SENT, EmailStatus.QUEUED, EmailStatus.FAILED}
    ),
    EmailStatus.SENT: frozenset(),
    EmailStatus.FAILED: frozenset({EmailStatus.QUEUED}),
}

URGENT_PRIORITIES = frozenset({Priority.HIGH, Priority.URGENT})


def can_transition(current: EmailStatus, target: EmailStatus) -> bool:
    """Check whether a delivery record may move from ``current`` to ``target``."""
    return target in ALLOWED_TRANSITIONS.get(EmailStatus(current), frozenset())


class NotificationContext(BaseModel):
    """Everything a business event hands to the notification service.

    The subject is the person the event is about (the employee requesting
    leave, the new hire); the actor is whoever caused it. Custom recipient
    overrides bypass rule-based resolution entirely.
    """

    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    subject_email: Optional[str] = None
    variables: Dict[str, Scalar] = Field(default_factory=dict)
    custom_recipient_ids: List[str] = Field(default_factory=list)
    custom_recipient_emails: List[str] = Field(default_factory=list)
    priority: Priority = Priority.NORMAL

    @property
    def hierarchy_user_id(self) -> Optional[str]:
        """User whose manager, team lead and department head are looked up."""
        return self.subject_id or self.actor_id


class Recipient(BaseModel):
    """A resolved delivery target.

    ``user_id`` is None for raw email overrides, which are never subject to
    per-user preference filtering.
    """

    model_config = ConfigDict(frozen=True)

    email: str
    name: str
    user_id: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return self.email.strip().lower()


class RecipientConfig(BaseModel):
    """Routing flags stored on a notification rule.

    Persisted as JSON using the camelCase keys of the admin UI. Absent keys
    mean false/empty.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    notify_requester: bool = Field(False, alias="notifyRequester")
    notify_manager: bool = Field(False, alias="notifyManager")
    notify_team_lead: bool = Field(False, alias="notifyTeamLead")
    notify_department_head: bool = Field(False, alias="notifyDepartmentHead")
    notify_hr: bool = Field(False, alias="notifyHR")
    notify_admin: bool = Field(False, alias="notifyAdmin")
    custom_recipients: List[str] = Field(default_factory=list, alias="customRecipients")
    role_recipients: List[str] = Field(default_factory=list, alias="roleRecipients")

    @field_validator("custom_recipients", "role_recipients", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Treat an explicit null list as empty."""
        return [] if v is None else v

    @classmethod
    def from_raw(cls, raw: Any) -> "RecipientConfig":
        """Build a config from an arbitrary stored JSON value.

        Non-mapping values yield an empty config. Keys whose values fail
        validation are dropped individually so the remaining flags survive.
        """
        if not isinstance(raw, dict):
            return cls()

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            bad_keys = {error["loc"][0] for error in e.errors() if error["loc"]}
            cleaned = {k: v for k, v in raw.items() if k not in bad_keys}
            return cls.model_validate(cleaned)

    def to_storage(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used in storage."""
        return self.model_dump(by_alias=True)

    def resolved_roles(self) -> List[Role]:
        """Role recipients that name a known role, unknown names ignored."""
        roles = []
        for name in self.role_recipients:
            try:
                roles.append(Role(str(name).upper()))
            except ValueError:
                continue
        return roles


class NotificationRule(BaseModel):
    """Routing rule for one notification type."""

    id: Optional[int] = None
    type: NotificationType
    is_active: bool = True
    recipient_config: RecipientConfig = Field(default_factory=RecipientConfig)


class NotificationPreference(BaseModel):
    """Per-user opt-out for one notification type."""

    user_id: str
    type: NotificationType
    email_enabled: bool = True


class EmailTemplate(BaseModel):
    """Admin-authored template for a notification type."""

    id: Optional[int] = None
    name: str
    type: NotificationType
    subject: str
    html_body: str
    variables: Dict[str, str] = Field(default_factory=dict)
    is_active: bool = True


class DirectoryUser(BaseModel):
    """Employee fields needed for recipient resolution."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role = Role.EMPLOYEE
    status: UserStatus = UserStatus.ACTIVE
    manager_id: Optional[str] = None
    team_id: Optional[str] = None
    department_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def as_recipient(self) -> Recipient:
        return Recipient(user_id=self.id, email=self.email, name=self.full_name)


class QueuedEmail(BaseModel):
    """A fully rendered email ready to be written to the delivery queue."""

    recipient_email: str
    recipient_name: Optional[str] = None
    recipient_id: Optional[str] = None
    subject: str
    html_body: str
    type: NotificationType
    template_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    metadata: Dict[str, Scalar] = Field(default_factory=dict)


class EmailLog(BaseModel):
    """A persisted delivery record and its audit trail."""

    id: int
    template_id: Optional[int] = None
    recipient_id: Optional[str] = None
    recipient_email: str
    recipient_name: Optional[str] = None
    subject: str
    type: NotificationType
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    html_body: Optional[str] = None
    metadata: Dict[str, Scalar] = Field(default_factory=dict)
    status: EmailStatus = EmailStatus.QUEUED
    retry_count: int = 0
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def has_content(self) -> bool:
        return bool(self.html_body and self.html_body.strip())

    @property
    def priority(self) -> Priority:
        try:
            return Priority(self.metadata.get("priority") or Priority.NORMAL)
        except ValueError:
            return Priority.NORMAL
