"""Notification record store."""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from edunotify.core.exceptions import NotFoundError
from edunotify.models.notification import NotificationRecord, NotificationStatus, NotificationType
from edunotify.schemas.notification import (
    NotificationHistoryFilter,
    NotificationRecordResponse,
    NotificationStats,
)

logger = logging.getLogger(__name__)


class NotificationRecordStore:
    """
    Append-only ledger of notification attempts.

    A record is opened as pending before any channel is tried and closed
    exactly once with the combined outcome of all channels for that student.
    """

    def __init__(self, db: Session):
        self.db = db

    def open_records(
        self,
        student_ids: list[int | None],
        title: str,
        message: str,
        notification_type: NotificationType,
    ) -> dict[int | None, NotificationRecord]:
        """Insert one pending record per student, keyed by student id."""
        records = {
            student_id: NotificationRecord(
                student_id=student_id,
                title=title,
                message=message,
                notification_type=notification_type,
                status=NotificationStatus.PENDING,
            )
            for student_id in student_ids
        }
        self.db.add_all(records.values())
        self.db.flush()
        return records

    def close_record(
        self,
        record: NotificationRecord,
        email_sent: bool,
        sms_sent: bool,
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> NotificationRecord:
        """Move a pending record to its terminal status."""
        if record.status != NotificationStatus.PENDING:
            raise ValueError(f"Notification {record.id} already finalized as {record.status.value}")

        record.email_sent = email_sent
        record.sms_sent = sms_sent
        if email_sent or sms_sent:
            record.status = NotificationStatus.SENT
            record.sent_at = sent_at or datetime.now(timezone.utc)
        else:
            record.status = NotificationStatus.FAILED
        record.error = error
        return record

    def mark_read(self, notification_ids: list[int]) -> int:
        """Flag delivered records as read. Returns how many changed."""
        records = self.db.execute(
            select(NotificationRecord).where(
                NotificationRecord.id.in_(notification_ids),
                NotificationRecord.status == NotificationStatus.SENT,
            )
        ).scalars().all()
        for record in records:
            record.status = NotificationStatus.READ
        self.db.flush()
        logger.info(f"Marked {len(records)} of {len(notification_ids)} notifications as read")
        return len(records)

    def commit(self) -> None:
        """Persist finalized records."""
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def get_record(self, notification_id: int) -> NotificationRecord:
        record = self.db.get(NotificationRecord, notification_id)
        if not record:
            raise NotFoundError("Notification", str(notification_id))
        return record

    def history(
        self,
        filters: NotificationHistoryFilter | None = None,
        limit: int = 50,
    ) -> list[NotificationRecordResponse]:
        """Most recent records first."""
        query = select(NotificationRecord)

        if filters:
            if filters.student_id is not None:
                query = query.where(NotificationRecord.student_id == filters.student_id)
            if filters.notification_type:
                query = query.where(NotificationRecord.notification_type == filters.notification_type)
            if filters.status:
                query = query.where(NotificationRecord.status == filters.status)

        query = query.order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc()).limit(limit)
        records = self.db.execute(query).scalars().all()
        return [NotificationRecordResponse.model_validate(r) for r in records]

    def get_stats(self, student_id: int | None = None) -> NotificationStats:
        """Counts of records by status."""
        query = select(NotificationRecord.status, func.count()).group_by(NotificationRecord.status)
        if student_id is not None:
            query = query.where(NotificationRecord.student_id == student_id)
        counts = {status: count for status, count in self.db.execute(query).all()}
        return NotificationStats.from_counts(counts)
