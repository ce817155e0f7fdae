"""Result model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from edunotify.core.database import Base
from edunotify.models.base import BigIntegerType, IDMixin, TimestampMixin


class ResultStatus(str, enum.Enum):
    """Result status enumeration. Transitions only towards PUBLISHED."""

    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"

    @classmethod
    def unpublished(cls) -> tuple["ResultStatus", ...]:
        return (cls.DRAFT, cls.PENDING)


class Result(Base, IDMixin, TimestampMixin):
    """Course result for one student in one semester."""

    __tablename__ = "results"

    student_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("courses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    ca_score: Mapped[float] = mapped_column(Float, nullable=False)
    exam_score: Mapped[float] = mapped_column(Float, nullable=False)
    total_score: Mapped[float] = mapped_column(Float, nullable=False)
    grade: Mapped[str] = mapped_column(String(2), nullable=False)
    grade_point: Mapped[float] = mapped_column(Float, nullable=False)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[ResultStatus] = mapped_column(
        Enum(ResultStatus),
        default=ResultStatus.PENDING,
        nullable=False,
        index=True,
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    student: Mapped["Student"] = relationship(
        "Student",
        back_populates="results",
        lazy="selectin",
    )
    course: Mapped["Course"] = relationship("Course", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "student_id", "course_id", "semester", "academic_year",
            name="uq_result_student_course_term",
        ),
    )

    def __repr__(self) -> str:
        return f"<Result(id={self.id}, student_id={self.student_id}, course_id={self.course_id}, status={self.status})>"


# Import to avoid circular imports
from edunotify.models.course import Course  # noqa: E402
from edunotify.models.student import Student  # noqa: E402
