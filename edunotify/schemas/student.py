"""Student schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from edunotify.schemas.common import BaseSchema, PaginatedResponse
from edunotify.services.contact import is_valid_email


class StudentBase(BaseSchema):
    """Base student schema."""

    student_id: str = Field(..., min_length=1, max_length=50, description="Matric number")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    department: str = Field(..., min_length=1, max_length=100)
    level: str = Field(..., min_length=1, max_length=20)
    status: str = Field("active", min_length=1, max_length=20)


class StudentCreate(StudentBase):
    """Student creation schema."""

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        if v and not is_valid_email(v):
            raise ValueError("Invalid email address")
        return v or None


class StudentUpdate(BaseSchema):
    """Student update schema."""

    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    department: str | None = Field(None, min_length=1, max_length=100)
    level: str | None = Field(None, min_length=1, max_length=20)
    status: str | None = Field(None, min_length=1, max_length=20)


class StudentResponse(StudentBase):
    """Student response schema."""

    id: int
    cgpa: float | None
    created_at: datetime
    updated_at: datetime


class StudentFilter(BaseSchema):
    """Exact-match student filter used to target bulk sends."""

    department: str | None = None
    level: str | None = None
    status: str | None = None

    def is_empty(self) -> bool:
        return not any(self.model_dump(exclude_none=True).values())


class StudentRecord(BaseSchema):
    """Validated student row as read from the store for notification work."""

    id: int
    student_id: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str | None = None
    phone: str | None = None
    department: str
    level: str
    status: str
    cgpa: float | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PaginatedStudentResponse(PaginatedResponse):
    """Paginated student list."""

    items: list[StudentResponse]
