"""Built-in email templates, one per notification type.

Bodies use the ``{{variable}}`` placeholder syntax understood by
TemplateEngine and are wrapped in the shared layout at render time.
"""

from typing import Dict

from hrnotify.domain.models import NotificationType

from .models import DefaultTemplate


def _info_row(label: str, value: str) -> str:
    return (
        f'<div class="info-row"><span class="info-label">{label}</span>'
        f'<span class="info-value">{value}</span></div>'
    )


def _badge(kind: str, text: str) -> str:
    return f'<div style="margin-top: 16px;"><span class="badge badge-{kind}">{text}</span></div>'


def _button(href: str, text: str) -> str:
    return f'<a href="{href}" class="button">{text}</a>'


_LEAVE_DURATION = "{{startDate}} - {{endDate}} ({{days}} day(s))"

DEFAULT_TEMPLATES: Dict[NotificationType, DefaultTemplate] = {
    NotificationType.LEAVE_REQUEST_SUBMITTED: DefaultTemplate(
        subject="Leave Request Submitted - {{leaveType}}",
        html_body=f"""
<h2 class="title">Leave Request Submitted</h2>
<p class="subtitle">Your leave request has been submitted and is pending approval.</p>
<div class="content">
  {_info_row("Leave Type", "{{leaveType}}")}
  {_info_row("Duration", _LEAVE_DURATION)}
  {_info_row("Reason", "{{reason}}")}
  {_badge("pending", "Pending Approval")}
</div>
{_button("{{appUrl}}/dashboard/leaves", "View My Leaves")}
""",
        variables={
            "leaveType": "Type of leave",
            "startDate": "Start date",
            "endDate": "End date",
            "days": "Number of days",
            "reason": "Reason for leave",
        },
    ),
    NotificationType.LEAVE_REQUEST_APPROVED: DefaultTemplate(
        subject="Leave Request Approved - {{leaveType}}",
        html_body=f"""
<h2 class="title">Leave Request Approved</h2>
<p class="subtitle">Your leave request has been approved by {{{{approverName}}}}.</p>
<div class="content">
  {_info_row("Leave Type", "{{leaveType}}")}
  {_info_row("Duration", _LEAVE_DURATION)}
  {_badge("approved", "Approved")}
</div>
{_button("{{appUrl}}/dashboard/leaves", "View My Leaves")}
""",
        variables={
            "leaveType": "Type of leave",
            "startDate": "Start date",
            "endDate": "End date",
            "days": "Number of days",
            "approverName": "Name of approver",
        },
    ),
    NotificationType.LEAVE_REQUEST_REJECTED: DefaultTemplate(
        subject="Leave Request Rejected - {{leaveType}}",
        html_body=f"""
<h2 class="title">Leave Request Rejected</h2>
<p class="subtitle">Your leave request has been rejected by {{{{approverName}}}}.</p>
<div class="content">
  {_info_row("Leave Type", "{{leaveType}}")}
  {_info_row("Duration", _LEAVE_DURATION)}
  {_info_row("Reason for Rejection", "{{rejectionReason}}")}
  {_badge("rejected", "Rejected")}
</div>
{_button("{{appUrl}}/dashboard/leaves", "View My Leaves")}
""",
        variables={
            "leaveType": "Type of leave",
            "startDate": "Start date",
            "endDate": "End date",
            "days": "Number of days",
            "approverName": "Name of approver",
            "rejectionReason": "Reason for rejection",
        },
    ),
    NotificationType.LEAVE_REQUEST_CANCELLED: DefaultTemplate(
        subject="Leave Request Cancelled - {{leaveType}}",
        html_body=f"""
<h2 class="title">Leave Request Cancelled</h2>
<p class="subtitle">A leave request has been cancelled.</p>
<div class="content">
  {_info_row("Employee", "{{employeeName}}")}
  {_info_row("Leave Type", "{{leaveType}}")}
  {_info_row("Duration", "{{startDate}} - {{endDate}}")}
</div>
""",
        variables={
            "employeeName": "Employee name",
            "leaveType": "Type of leave",
            "startDate": "Start date",
            "endDate": "End date",
        },
    ),
    NotificationType.LEAVE_PENDING_APPROVAL: DefaultTemplate(
        subject="New Leave Request from {{employeeName}}",
        html_body=f"""
<h2 class="title">New Leave Request</h2>
<p class="subtitle">{{{{employeeName}}}} has submitted a leave request requiring your approval.</p>
<div class="content">
  {_info_row("Employee", "{{employeeName}}")}
  {_info_row("Leave Type", "{{leaveType}}")}
  {_info_row("Duration", _LEAVE_DURATION)}
  {_info_row("Reason", "{{reason}}")}
</div>
{_button("{{appUrl}}/dashboard/leaves/requests", "Review Requests")}
""",
        variables={
            "employeeName": "Employee name",
            "leaveType": "Type of leave",
            "startDate": "Start date",
            "endDate": "End date",
            "days": "Number of days",
            "reason": "Reason for leave",
        },
    ),
    NotificationType.REQUEST_SUBMITTED: DefaultTemplate(
        subject="Request Submitted - {{subject}}",
        html_body=f"""
<h2 class="title">Request Submitted</h2>
<p class="subtitle">Your {{{{requestType}}}} request has been submitted.</p>
<div class="content">
  {_info_row("Type", "{{requestType}}")}
  {_info_row("Subject", "{{subject}}")}
  {_badge("pending", "Pending")}
</div>
{_button("{{appUrl}}/dashboard/requests", "View My Requests")}
""",
        variables={
            "requestType": "Type of request",
            "subject": "Request subject",
        },
    ),
    NotificationType.REQUEST_APPROVED: DefaultTemplate(
        subject="Request Approved - {{subject}}",
        html_body=f"""
<h2 class="title">Request Approved</h2>
<p class="subtitle">Your {{{{requestType}}}} request has been approved.</p>
<div class="content">
  {_info_row("Subject", "{{subject}}")}
  {_info_row("Handled by", "{{approverName}}")}
  {_info_row("Response", "{{response}}")}
  {_badge("approved", "Approved")}
</div>
{_button("{{appUrl}}/dashboard/requests", "View My Requests")}
""",
        variables={
            "requestType": "Type of request",
            "subject": "Request subject",
            "approverName": "Name of approver",
            "response": "Approver response",
        },
    ),
    NotificationType.REQUEST_REJECTED: DefaultTemplate(
        subject="Request Rejected - {{subject}}",
        html_body=f"""
<h2 class="title">Request Rejected</h2>
<p class="subtitle">Your {{{{requestType}}}} request has been rejected.</p>
<div class="content">
  {_info_row("Subject", "{{subject}}")}
  {_info_row("Handled by", "{{approverName}}")}
  {_info_row("Response", "{{response}}")}
  {_badge("rejected", "Rejected")}
</div>
{_button("{{appUrl}}/dashboard/requests", "View My Requests")}
""",
        variables={
            "requestType": "Type of request",
            "subject": "Request subject",
            "approverName": "Name of approver",
            "response": "Rejection reason",
        },
    ),
    NotificationType.ANNOUNCEMENT_PUBLISHED: DefaultTemplate(
        subject="{{typeLabel}}: {{title}}",
        html_body=f"""
<h2 class="title">{{{{typeLabel}}}} Announcement</h2>
<p class="subtitle">A new announcement has been posted.</p>
<div class="content">
  <h3 style="font-size: 16px; margin-bottom: 12px;">{{{{title}}}}</h3>
  <p style="color: #666; margin-bottom: 16px;">{{{{preview}}}}</p>
  <p style="font-size: 12px; color: #999;">Posted by {{{{publishedBy}}}}</p>
</div>
{_button("{{appUrl}}/dashboard/announcements", "Read Full Announcement")}
""",
        variables={
            "typeLabel": "Announcement type label",
            "title": "Announcement title",
            "preview": "Content preview",
            "publishedBy": "Publisher name",
        },
    ),
    NotificationType.BIRTHDAY_REMINDER: DefaultTemplate(
        subject="Birthday Today: {{birthdayPerson}}",
        html_body=f"""
<h2 class="title">Birthday Reminder</h2>
<p class="subtitle">Don't forget to wish your colleague!</p>
<div class="content" style="text-align: center; padding: 20px 0;">
  <p style="font-size: 18px; margin-bottom: 8px;"><strong>{{{{birthdayPerson}}}}</strong></p>
  <p style="color: #666;">{{{{department}}}}</p>
  <p style="margin-top: 16px;">is celebrating their birthday today!</p>
</div>
{_button("{{appUrl}}/dashboard", "View Dashboard")}
""",
        variables={
            "birthdayPerson": "Name of birthday person",
            "department": "Department name",
        },
    ),
    NotificationType.WORK_ANNIVERSARY: DefaultTemplate(
        subject="Work Anniversary: {{employeeName}} - {{years}} Year(s)",
        html_body="""
<h2 class="title">Work Anniversary</h2>
<p class="subtitle">Congratulations on your work anniversary!</p>
<div class="content" style="text-align: center; padding: 20px 0;">
  <p style="font-size: 18px; margin-bottom: 8px;"><strong>{{employeeName}}</strong></p>
  <p style="color: #666;">{{department}}</p>
  <p style="margin-top: 16px;">is celebrating <strong>{{years}} year(s)</strong> with us!</p>
</div>
""",
        variables={
            "employeeName": "Employee name",
            "department": "Department name",
            "years": "Number of years",
        },
    ),
    NotificationType.ASSET_ASSIGNED: DefaultTemplate(
        subject="Asset Assigned - {{assetName}}",
        html_body=f"""
<h2 class="title">Asset Assigned</h2>
<p class="subtitle">An asset has been assigned to you.</p>
<div class="content">
  {_info_row("Asset", "{{assetName}}")}
  {_info_row("Asset Tag", "{{assetTag}}")}
  {_info_row("Category", "{{category}}")}
  {_info_row("Assigned By", "{{assignedBy}}")}
</div>
{_button("{{appUrl}}/dashboard/assets", "View My Assets")}
""",
        variables={
            "assetName": "Asset name",
            "assetTag": "Asset tag",
            "category": "Asset category",
            "assignedBy": "Assigned by",
        },
    ),
    NotificationType.ASSET_RETURNED: DefaultTemplate(
        subject="Asset Returned - {{assetName}}",
        html_body=f"""
<h2 class="title">Asset Returned</h2>
<p class="subtitle">An asset has been returned.</p>
<div class="content">
  {_info_row("Asset", "{{assetName}}")}
  {_info_row("Asset Tag", "{{assetTag}}")}
  {_info_row("Returned By", "{{returnedBy}}")}
  {_info_row("Condition", "{{condition}}")}
</div>
""",
        variables={
            "assetName": "Asset name",
            "assetTag": "Asset tag",
            "returnedBy": "Returned by",
            "condition": "Asset condition",
        },
    ),
    NotificationType.WELCOME_EMAIL: DefaultTemplate(
        subject="Welcome to {{appName}}!",
        html_body=f"""
<h2 class="title">Welcome to {{{{appName}}}}!</h2>
<p class="subtitle">Your account has been created.</p>
<div class="content">
  <p>Hello {{{{employeeName}}}},</p>
  <p>Welcome to the team! Your account has been set up and you can now access the HR portal.</p>
  {_info_row("Email", "{{email}}")}
  {_info_row("Employee ID", "{{employeeId}}")}
</div>
{_button("{{appUrl}}/login", "Login to Portal")}
""",
        variables={
            "employeeName": "Employee name",
            "email": "Employee email",
            "employeeId": "Employee ID",
        },
    ),
    NotificationType.PASSWORD_RESET: DefaultTemplate(
        subject="Password Reset Request - {{appName}}",
        html_body=f"""
<h2 class="title">Password Reset Request</h2>
<p class="subtitle">You requested to reset your password.</p>
<div class="content">
  <p>Click the button below to reset your password. This link will expire in 1 hour.</p>
  <p style="font-size: 12px; color: #999;">If you didn't request this, please ignore this email.</p>
</div>
{_button("{{resetLink}}", "Reset Password")}
""",
        variables={
            "resetLink": "Password reset link",
        },
    ),
    NotificationType.APPRECIATION: DefaultTemplate(
        subject="You received an appreciation from {{senderName}}!",
        html_body=f"""
<h2 class="title">You've Been Appreciated!</h2>
<p class="subtitle">{{{{senderName}}}} has sent you an appreciation.</p>
<div class="content" style="text-align: center; padding: 20px 0;">
  <p style="font-size: 16px; font-style: italic;">"{{{{message}}}}"</p>
  <p style="margin-top: 16px; color: #666;">- {{{{senderName}}}}</p>
</div>
{_button("{{appUrl}}/dashboard", "View Dashboard")}
""",
        variables={
            "senderName": "Sender name",
            "message": "Appreciation message",
        },
    ),
    NotificationType.CUSTOM: DefaultTemplate(
        subject="{{subject}}",
        html_body="""
<h2 class="title">{{title}}</h2>
<div class="content">
  {{content}}
</div>
""",
        variables={
            "subject": "Email subject",
            "title": "Email title",
            "content": "Email content",
        },
    ),
}

_missing = [t.value for t in NotificationType if t not in DEFAULT_TEMPLATES]
if _missing:
    raise RuntimeError(f"No default email template for: {', '.join(_missing)}")


# Sample values used to preview templates without a real event
SAMPLE_VARIABLES: Dict[str, object] = {
    "recipientName": "John Doe",
    "recipientEmail": "john.doe@example.com",
    "employeeName": "John Doe",
    "leaveType": "Annual Leave",
    "startDate": "2024-03-15",
    "endDate": "2024-03-20",
    "days": 5,
    "reason": "Family vacation",
    "approverName": "Jane Smith",
    "rejectionReason": "Team capacity constraints during this period",
    "requestType": "Asset",
    "subject": "Request for new laptop",
    "response": "Your request has been processed",
    "typeLabel": "Important",
    "title": "Company Update",
    "preview": "This is a preview of the announcement content...",
    "publishedBy": "HR Department",
    "birthdayPerson": "John Doe",
    "department": "Engineering",
    "years": 5,
    "assetName": 'MacBook Pro 14"',
    "assetTag": "LAP-001",
    "category": "Laptop",
    "assignedBy": "IT Admin",
    "returnedBy": "John Doe",
    "condition": "Good",
    "email": "john.doe@example.com",
    "employeeId": "EMP001",
    "resetLink": "https://example.com/reset?token=sample",
    "senderName": "Jane Smith",
    "message": "Great job on the project! Your dedication and hard work really made a difference.",
    "content": "<p>This is custom email content.</p>",
}
