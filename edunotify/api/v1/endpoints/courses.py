"""Course catalog endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from edunotify.core.database import get_db
from edunotify.schemas.course import CourseCreate, CourseResponse
from edunotify.services.course import CourseService

router = APIRouter()


@router.post("", response_model=CourseResponse)
def create_course(
    request: CourseCreate,
    db: Annotated[Session, Depends(get_db)],
):
    """Add a course to the catalog."""
    return CourseService(db).create_course(request)


@router.get("", response_model=list[CourseResponse])
def list_courses(
    db: Annotated[Session, Depends(get_db)],
    department: str | None = None,
    level: str | None = None,
    semester: str | None = None,
    active_only: bool = False,
):
    """List catalog entries."""
    return CourseService(db).list_courses(
        department=department,
        level=level,
        semester=semester,
        active_only=active_only,
    )


@router.get("/{course_id}", response_model=CourseResponse)
def get_course(
    course_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Get course details."""
    return CourseService(db).get_course(course_id)
