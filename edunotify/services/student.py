"""Student management service."""

import logging
from typing import NamedTuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from edunotify.core.exceptions import NotFoundError, StoreError, ValidationError
from edunotify.models.course import Course
from edunotify.models.result import Result
from edunotify.models.student import Student
from edunotify.schemas.student import (
    PaginatedStudentResponse,
    StudentCreate,
    StudentFilter,
    StudentRecord,
    StudentResponse,
    StudentUpdate,
)
from edunotify.services.filters import filter_students
from edunotify.services.grading import calculate_cgpa

logger = logging.getLogger(__name__)


def to_student_record(student: Student) -> StudentRecord | None:
    """Parse an ORM row into the validated DTO; None (logged) when malformed."""
    try:
        return StudentRecord.model_validate(student)
    except PydanticValidationError as exc:
        logger.warning(f"Skipping malformed student row id={student.id}: {exc.error_count()} error(s)")
        return None


class StudentLookup(NamedTuple):
    """Outcome of resolving explicit student IDs."""

    records: list[StudentRecord]
    missing: list[int]
    # Rows that exist but fail validation
    malformed: list[int]


class StudentService:
    """Student management service."""

    def __init__(self, db: Session):
        self.db = db

    def create_student(self, request: StudentCreate) -> StudentResponse:
        """Create a new student."""
        existing = self.db.execute(
            select(Student.id).where(Student.student_id == request.student_id)
        ).scalar_one_or_none()
        if existing:
            raise ValidationError(f"Student ID {request.student_id} already exists")

        student = Student(**request.model_dump())
        self.db.add(student)
        self.db.flush()
        self.db.refresh(student)
        return StudentResponse.model_validate(student)

    def get_student(self, student_id: int) -> Student:
        """Get student by database ID."""
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student", str(student_id))
        return student

    def update_student(self, student_id: int, request: StudentUpdate) -> StudentResponse:
        """Update a student."""
        student = self.get_student(student_id)
        update_data = request.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(student, field, value)
        self.db.flush()
        self.db.refresh(student)
        return StudentResponse.model_validate(student)

    def list_students(
        self,
        filters: StudentFilter | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> PaginatedStudentResponse:
        """List students with filtering and pagination."""
        query = select(Student)

        if filters:
            if filters.department:
                query = query.where(Student.department == filters.department)
            if filters.level:
                query = query.where(Student.level == filters.level)
            if filters.status:
                query = query.where(Student.status == filters.status)
        if search:
            search_term = f"%{search}%"
            query = query.where(
                or_(
                    Student.first_name.ilike(search_term),
                    Student.last_name.ilike(search_term),
                    Student.student_id.ilike(search_term),
                    Student.email.ilike(search_term),
                )
            )

        # Get total count
        count_query = select(func.count()).select_from(query.subquery())
        total = self.db.execute(count_query).scalar() or 0

        # Apply pagination
        query = query.order_by(Student.last_name, Student.first_name)
        query = query.offset((page - 1) * page_size).limit(page_size)
        students = self.db.execute(query).scalars().all()

        return PaginatedStudentResponse(
            items=[StudentResponse.model_validate(s) for s in students],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=(total + page_size - 1) // page_size,
        )

    # ==========================================
    # Notification targeting
    # ==========================================

    def get_records(self, ids: list[int]) -> StudentLookup:
        """Resolve database IDs to validated students."""
        try:
            students = self.db.execute(
                select(Student).where(Student.id.in_(ids)).order_by(Student.id)
            ).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to fetch students: {exc}") from exc

        found = {s.id for s in students}
        records = []
        malformed = []
        for student in students:
            record = to_student_record(student)
            if record is None:
                malformed.append(student.id)
            else:
                records.append(record)
        missing = [i for i in ids if i not in found]
        return StudentLookup(records, missing, malformed)

    def find_records(self, filters: StudentFilter | None = None) -> list[StudentRecord]:
        """Apply the exact-match filter over the whole student collection."""
        try:
            students = self.db.execute(select(Student).order_by(Student.id)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to fetch students: {exc}") from exc

        records = [r for s in students if (r := to_student_record(s)) is not None]
        return filter_students(records, filters)

    # ==========================================
    # CGPA
    # ==========================================

    def recompute_cgpa(self, student_id: int) -> float | None:
        """Recalculate and store a student's CGPA from all recorded results."""
        student = self.get_student(student_id)
        rows = self.db.execute(
            select(Result.grade_point, Course.credit_units)
            .join(Course, Result.course_id == Course.id)
            .where(Result.student_id == student_id)
        ).all()
        student.cgpa = calculate_cgpa((row.grade_point, row.credit_units) for row in rows)
        self.db.flush()
        logger.info(f"CGPA for student {student.student_id} recomputed: {student.cgpa}")
        return student.cgpa
