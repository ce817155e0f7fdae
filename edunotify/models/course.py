"""Course catalog model."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from edunotify.core.database import Base
from edunotify.models.base import IDMixin, TimestampMixin


class Course(Base, IDMixin, TimestampMixin):
    """Course catalog entry."""

    __tablename__ = "courses"

    course_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    course_title: Mapped[str] = mapped_column(String(255), nullable=False)
    credit_units: Mapped[int] = mapped_column(Integer, nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, code={self.course_code})>"
