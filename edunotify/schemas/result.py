"""Result schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from edunotify.models.result import ResultStatus
from edunotify.schemas.common import BaseSchema
from edunotify.schemas.student import StudentRecord
from edunotify.services.grading import CA_MAX, EXAM_MAX, TOTAL_MAX


# ==========================================
# Result entry
# ==========================================

class ResultEntry(BaseSchema):
    """CA and exam scores for one course."""

    course_id: int
    ca_score: float = Field(..., ge=0)
    exam_score: float = Field(..., ge=0)


class ResultBatchCreate(BaseSchema):
    """Semester results for one student."""

    student_id: int = Field(..., description="Student database ID")
    semester: str = Field(..., min_length=1, max_length=20)
    academic_year: str = Field(..., min_length=4, max_length=20)
    entries: list[ResultEntry] = Field(..., min_length=1)

    @field_validator("entries")
    @classmethod
    def validate_unique_courses(cls, v: list[ResultEntry]) -> list[ResultEntry]:
        course_ids = [entry.course_id for entry in v]
        if len(set(course_ids)) != len(course_ids):
            raise ValueError("Duplicate course detected")
        return v


class ResultResponse(BaseSchema):
    """Result response schema."""

    id: int
    student_id: int
    course_id: int
    ca_score: float
    exam_score: float
    total_score: float
    grade: str
    grade_point: float
    semester: str
    academic_year: str
    status: ResultStatus
    published_at: datetime | None
    created_at: datetime


class ResultFilter(BaseSchema):
    """Result filtering options."""

    student_id: int | None = None
    status: ResultStatus | None = None
    semester: str | None = None
    academic_year: str | None = None


# ==========================================
# Publish pipeline DTOs
# ==========================================

class CourseResultLine(BaseSchema):
    """One validated result row joined with its course, as used in messages."""

    result_id: int
    status: ResultStatus
    course_code: str = Field(..., min_length=1)
    course_title: str = Field(..., min_length=1)
    credit_units: int = Field(..., gt=0)
    ca_score: float = Field(..., ge=0, le=CA_MAX)
    exam_score: float = Field(..., ge=0, le=EXAM_MAX)
    total_score: float = Field(..., ge=0, le=TOTAL_MAX)
    grade: str = Field(..., min_length=1)
    grade_point: float = Field(..., ge=0)
    semester: str
    academic_year: str


class StudentResults(BaseSchema):
    """All candidate results for one student in a publish cycle."""

    student: StudentRecord
    results: list[CourseResultLine] = []

    @property
    def semester(self) -> str:
        return self.results[0].semester if self.results else ""

    @property
    def academic_year(self) -> str:
        return self.results[0].academic_year if self.results else ""
