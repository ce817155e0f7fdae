"""Notification record model."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from edunotify.core.database import Base
from edunotify.models.base import BigIntegerType, IDMixin, utcnow


class NotificationType(str, enum.Enum):
    """Notification type enumeration."""

    GENERAL = "general"
    RESULT = "result"
    ENROLLMENT = "enrollment"
    ANNOUNCEMENT = "announcement"
    CUSTOM = "custom"
    TEST = "test"


class NotificationStatus(str, enum.Enum):
    """Notification status enumeration."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    READ = "read"


class NotificationRecord(Base, IDMixin):
    """Append-only log of one notification event for one student."""

    __tablename__ = "notifications"

    # Recipient; null for broadcast sends
    student_id: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("students.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType),
        nullable=False,
    )

    # Delivery
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus),
        default=NotificationStatus.PENDING,
        nullable=False,
        index=True,
    )
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sms_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    student: Mapped["Student | None"] = relationship("Student", lazy="selectin")

    def __repr__(self) -> str:
        return f"<NotificationRecord(id={self.id}, student_id={self.student_id}, status={self.status})>"


# Import to avoid circular imports
from edunotify.models.student import Student  # noqa: E402
