"""Course schemas."""

from datetime import datetime

from pydantic import Field

from edunotify.schemas.common import BaseSchema


class CourseCreate(BaseSchema):
    """Course creation schema."""

    course_code: str = Field(..., min_length=2, max_length=20)
    course_title: str = Field(..., min_length=2, max_length=255)
    credit_units: int = Field(..., gt=0, le=12)
    department: str = Field(..., min_length=1, max_length=100)
    level: str = Field(..., min_length=1, max_length=20)
    semester: str = Field(..., min_length=1, max_length=20)
    is_active: bool = True


class CourseResponse(CourseCreate):
    """Course response schema."""

    id: int
    created_at: datetime
    updated_at: datetime
