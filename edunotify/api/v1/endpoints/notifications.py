"""Notification endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from edunotify.core.database import get_db
from edunotify.core.dependencies import EmailSender, Publisher, Renderer, SmsSender
from edunotify.core.exceptions import ServiceUnavailableError, ValidationError
from edunotify.models.notification import NotificationStatus, NotificationType
from edunotify.schemas.notification import (
    BulkNotificationRequest,
    ChannelCheckResponse,
    CustomNotificationRequest,
    EmailCheckRequest,
    EnrollmentNotificationRequest,
    MarkReadRequest,
    MarkReadResponse,
    NotificationHistoryFilter,
    NotificationRecordResponse,
    NotificationResult,
    NotificationStats,
    NotificationTestRequest,
    SmsCheckRequest,
)
from edunotify.services.channels.base import Recipient
from edunotify.services.contact import is_valid_email, normalize_phone
from edunotify.services.notification import NotificationRecordStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/custom", response_model=NotificationResult, response_model_by_alias=True)
async def send_custom_notification(request: CustomNotificationRequest, publisher: Publisher):
    """Send a message to the listed students."""
    return await publisher.send_custom_notification(
        request.student_ids,
        request.title,
        request.message,
        notification_type=request.notification_type,
    )


@router.post("/bulk", response_model=NotificationResult, response_model_by_alias=True)
async def send_bulk_notification(request: BulkNotificationRequest, publisher: Publisher):
    """Send a message to every student matching the filters."""
    return await publisher.send_bulk_notification(
        request.title,
        request.message,
        filters=request.filters,
        notification_type=request.notification_type,
    )


@router.post("/enrollment", response_model=NotificationResult, response_model_by_alias=True)
async def send_enrollment_confirmation(request: EnrollmentNotificationRequest, publisher: Publisher):
    """Confirm enrollment for the listed students."""
    return await publisher.send_enrollment_confirmation(request.student_ids)


@router.post("/test", response_model=NotificationResult, response_model_by_alias=True)
async def send_test_notification(request: NotificationTestRequest, publisher: Publisher):
    """Send the canned test notification to the first active students."""
    return await publisher.send_test_notification(request.count)


@router.get("", response_model=list[NotificationRecordResponse])
def list_notifications(
    db: Annotated[Session, Depends(get_db)],
    student_id: int | None = None,
    notification_type: NotificationType | None = None,
    status: NotificationStatus | None = None,
    limit: int = Query(50, ge=1, le=500),
):
    """Notification history, most recent first."""
    store = NotificationRecordStore(db)
    filters = NotificationHistoryFilter(
        student_id=student_id,
        notification_type=notification_type,
        status=status,
    )
    return store.history(filters, limit=limit)


@router.get("/stats", response_model=NotificationStats)
def get_notification_stats(
    db: Annotated[Session, Depends(get_db)],
    student_id: int | None = None,
):
    """Counts of notification records by status."""
    return NotificationRecordStore(db).get_stats(student_id)


@router.patch("/read", response_model=MarkReadResponse, response_model_by_alias=True)
def mark_notifications_read(
    request: MarkReadRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Mark delivered notifications as read."""
    updated = NotificationRecordStore(db).mark_read(request.notification_ids)
    return MarkReadResponse(updated=updated)


@router.post("/test-email", response_model=ChannelCheckResponse, response_model_by_alias=True)
async def send_test_email(request: EmailCheckRequest, channel: EmailSender, renderer: Renderer):
    """Send one test email through the relay."""
    if not is_valid_email(request.email):
        raise ValidationError("Invalid email address")

    body = renderer.render_custom_message(
        "This is a test email from {{ institution }}. If you received it, email delivery is working.",
        student_name=request.student_name,
        first_name=request.student_name.split()[0],
        student_id="",
    )
    outcome = await channel.send(
        Recipient(address=request.email, name=request.student_name),
        f"Test Email - {renderer.institution}",
        body,
    )
    logger.info(f"Test email to {request.email}: {'sent' if outcome.success else outcome.error}")
    return ChannelCheckResponse(success=outcome.success, detail=outcome.error)


@router.post("/test-sms", response_model=ChannelCheckResponse, response_model_by_alias=True)
async def send_test_sms(request: SmsCheckRequest, channel: SmsSender):
    """Send one test SMS through the SMS service."""
    phone = normalize_phone(request.phone_number, e164=True)
    if not phone:
        raise ValidationError("Invalid phone number")

    outcome = await channel.send(Recipient(address=phone), "Test SMS", request.message)
    logger.info(f"Test SMS to {phone}: {'sent' if outcome.success else outcome.error}")
    return ChannelCheckResponse(success=outcome.success, detail=outcome.error or outcome.reference)


@router.get("/sms-health", response_model=ChannelCheckResponse, response_model_by_alias=True)
async def check_sms_health(channel: SmsSender):
    """Whether the SMS service is reachable and fully configured."""
    if not await channel.health():
        raise ServiceUnavailableError("SMS service unavailable")
    return ChannelCheckResponse(success=True, detail="SMS service healthy")
