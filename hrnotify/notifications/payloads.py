"""Context builders for the typed notification helpers.

Each builder turns the facts a business event knows about (a leave request,
an asset handover, a published notice) into the NotificationContext the
service resolves and renders. Variable names match the placeholders used by
the built-in templates.
"""

from typing import Optional, Sequence

from hrnotify.domain.models import NotificationContext, Priority

ANNOUNCEMENT_PREVIEW_LENGTH = 200

_NOTICE_LABELS = {"URGENT": "Urgent", "IMPORTANT": "Important"}
_NOTICE_PRIORITIES = {"URGENT": Priority.URGENT, "IMPORTANT": Priority.HIGH}


def truncate_preview(content: str, limit: int = ANNOUNCEMENT_PREVIEW_LENGTH) -> str:
    """Cut ``content`` to ``limit`` characters, marking the cut with '...'."""
    content = content or ""
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def welcome_context(
    user_id: str, email: str, first_name: str, last_name: str, employee_id: str
) -> NotificationContext:
    full_name = f"{first_name} {last_name}".strip()
    return NotificationContext(
        subject_id=user_id,
        subject_email=email,
        subject_name=full_name,
        variables={
            "employeeName": full_name,
            "email": email,
            "employeeId": employee_id,
        },
    )


def leave_context(
    leave_request_id: str,
    user_id: str,
    user_email: str,
    user_name: str,
    leave_type: str,
    start_date: str,
    end_date: str,
    days: float,
    reason: Optional[str] = None,
    approver_name: Optional[str] = None,
    rejection_reason: Optional[str] = None,
) -> NotificationContext:
    return NotificationContext(
        entity_type="LEAVE_REQUEST",
        entity_id=leave_request_id,
        subject_id=user_id,
        subject_email=user_email,
        subject_name=user_name,
        variables={
            "employeeName": user_name,
            "leaveType": leave_type,
            "startDate": start_date,
            "endDate": end_date,
            "days": days,
            "reason": reason or "",
            "approverName": approver_name or "",
            "rejectionReason": rejection_reason or "",
        },
    )


def request_context(
    request_id: str,
    user_id: str,
    user_email: str,
    user_name: str,
    request_type: str,
    subject: str,
    approver_name: Optional[str] = None,
    response: Optional[str] = None,
) -> NotificationContext:
    return NotificationContext(
        entity_type="EMPLOYEE_REQUEST",
        entity_id=request_id,
        subject_id=user_id,
        subject_email=user_email,
        subject_name=user_name,
        variables={
            "requestType": request_type,
            "subject": subject,
            "approverName": approver_name or "",
            "response": response or "",
        },
    )


def announcement_context(
    notice_id: str,
    title: str,
    content: str,
    notice_type: str,
    published_by: str,
    recipient_ids: Optional[Sequence[str]] = None,
) -> NotificationContext:
    """Context for a published notice.

    Urgent notices go out with URGENT priority and important ones with HIGH,
    which makes the service start a delivery run right away.
    """
    notice_type = (notice_type or "GENERAL").upper()
    return NotificationContext(
        entity_type="NOTICE",
        entity_id=notice_id,
        custom_recipient_ids=list(recipient_ids or []),
        priority=_NOTICE_PRIORITIES.get(notice_type, Priority.NORMAL),
        variables={
            "typeLabel": _NOTICE_LABELS.get(notice_type, "General"),
            "title": title,
            "preview": truncate_preview(content),
            "publishedBy": published_by,
        },
    )


def asset_context(
    asset_id: str,
    asset_name: str,
    asset_tag: str,
    category: str,
    user_id: str,
    user_email: str,
    user_name: str,
    action_by_name: str,
    condition: Optional[str] = None,
) -> NotificationContext:
    # One helper serves both assignment and return, so both names are filled
    return NotificationContext(
        entity_type="ASSET",
        entity_id=asset_id,
        subject_id=user_id,
        subject_email=user_email,
        subject_name=user_name,
        variables={
            "assetName": asset_name,
            "assetTag": asset_tag,
            "category": category,
            "assignedBy": action_by_name,
            "returnedBy": action_by_name,
            "condition": condition or "",
        },
    )


def appreciation_context(
    recipient_id: str,
    recipient_email: str,
    recipient_name: str,
    sender_name: str,
    message: str,
) -> NotificationContext:
    return NotificationContext(
        subject_id=recipient_id,
        subject_email=recipient_email,
        subject_name=recipient_name,
        variables={
            "senderName": sender_name,
            "message": message,
        },
    )
