"""Notification schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field

from edunotify.models.notification import NotificationStatus, NotificationType
from edunotify.schemas.common import BaseSchema, CamelSchema
from edunotify.schemas.student import StudentFilter


class DeliveryDetail(CamelSchema):
    """One success or failure entry reported back to the dashboard."""

    type: str
    student: str
    contact: str | None = None
    student_id: str | None = None
    error: str | None = None
    attempts: int | None = None


class NotificationResult(CamelSchema):
    """Aggregate outcome of a publish cycle or a custom/bulk send."""

    success: bool = True
    results_published: int = 0
    students_notified: int = 0
    emails_sent: int = 0
    sms_sent: int = 0
    total: int = 0
    success_details: list[DeliveryDetail] = []
    failure_details: list[DeliveryDetail] = []
    errors: list[str] = []
    message: str | None = None

    @classmethod
    def failure(cls, message: str) -> "NotificationResult":
        return cls(success=False, errors=[message], message=message)


class CustomNotificationRequest(CamelSchema):
    """Send a message to an explicit set of students."""

    student_ids: list[int] = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    notification_type: NotificationType = Field(NotificationType.CUSTOM, alias="type")


class BulkNotificationRequest(CamelSchema):
    """Send a message to every student matching the filters."""

    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    filters: StudentFilter = StudentFilter()
    notification_type: NotificationType = Field(NotificationType.ANNOUNCEMENT, alias="type")


class EnrollmentNotificationRequest(CamelSchema):
    """Confirm enrollment for the listed students."""

    student_ids: list[int] = Field(..., min_length=1)


class NotificationTestRequest(CamelSchema):
    """Send the canned test notification to the first active students."""

    count: int = Field(1, ge=1)


class EmailCheckRequest(CamelSchema):
    """Send a test email."""

    email: str = Field(..., min_length=3, max_length=255)
    student_name: str = Field(..., min_length=1, max_length=255)


class SmsCheckRequest(CamelSchema):
    """Send a test SMS."""

    phone_number: str = Field(..., min_length=3, max_length=50)
    message: str = Field(..., min_length=1, max_length=480)


class ChannelCheckResponse(CamelSchema):
    """Outcome of a test send or a health check."""

    success: bool
    detail: str | None = None


class NotificationRecordResponse(BaseSchema):
    """Notification history entry."""

    id: int
    student_id: int | None
    title: str
    message: str
    notification_type: NotificationType
    status: NotificationStatus
    email_sent: bool
    sms_sent: bool
    error: str | None
    created_at: datetime
    sent_at: datetime | None


class NotificationHistoryFilter(BaseSchema):
    """History filtering options."""

    student_id: int | None = None
    notification_type: NotificationType | None = None
    status: NotificationStatus | None = None


class NotificationStats(BaseSchema):
    """Counts of notification records by status."""

    total: int
    pending: int
    sent: int
    failed: int
    read: int = 0

    @classmethod
    def from_counts(cls, counts: dict[Any, int]) -> "NotificationStats":
        pending = counts.get(NotificationStatus.PENDING, 0)
        sent = counts.get(NotificationStatus.SENT, 0)
        failed = counts.get(NotificationStatus.FAILED, 0)
        read = counts.get(NotificationStatus.READ, 0)
        return cls(total=pending + sent + failed + read, pending=pending, sent=sent, failed=failed, read=read)


class MarkReadRequest(CamelSchema):
    """Notifications the student has seen."""

    notification_ids: list[int] = Field(..., min_length=1, max_length=500)


class MarkReadResponse(CamelSchema):
    updated: int
