"""Course catalog service."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from edunotify.core.exceptions import NotFoundError, ValidationError
from edunotify.models.course import Course
from edunotify.schemas.course import CourseCreate, CourseResponse


class CourseService:
    """Course catalog service."""

    def __init__(self, db: Session):
        self.db = db

    def create_course(self, request: CourseCreate) -> CourseResponse:
        """Create a catalog entry. Course codes are unique."""
        existing = self.db.execute(
            select(Course.id).where(Course.course_code == request.course_code)
        ).scalar_one_or_none()
        if existing:
            raise ValidationError(f"Course {request.course_code} already exists")

        course = Course(**request.model_dump())
        self.db.add(course)
        self.db.flush()
        self.db.refresh(course)
        return CourseResponse.model_validate(course)

    def get_course(self, course_id: int) -> Course:
        course = self.db.get(Course, course_id)
        if not course:
            raise NotFoundError("Course", str(course_id))
        return course

    def list_courses(
        self,
        department: str | None = None,
        level: str | None = None,
        semester: str | None = None,
        active_only: bool = False,
    ) -> list[CourseResponse]:
        """List catalog entries ordered by code."""
        query = select(Course)
        if department:
            query = query.where(Course.department == department)
        if level:
            query = query.where(Course.level == level)
        if semester:
            query = query.where(Course.semester == semester)
        if active_only:
            query = query.where(Course.is_active.is_(True))

        courses = self.db.execute(query.order_by(Course.course_code)).scalars().all()
        return [CourseResponse.model_validate(c) for c in courses]
