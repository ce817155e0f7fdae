"""Student management endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from edunotify.core.database import get_db
from edunotify.schemas.notification import NotificationStats
from edunotify.schemas.student import (
    PaginatedStudentResponse,
    StudentCreate,
    StudentFilter,
    StudentResponse,
    StudentUpdate,
)
from edunotify.services.notification import NotificationRecordStore
from edunotify.services.student import StudentService

router = APIRouter()


@router.post("", response_model=StudentResponse)
def create_student(
    request: StudentCreate,
    db: Annotated[Session, Depends(get_db)],
):
    """Create a new student."""
    service = StudentService(db)
    return service.create_student(request)


@router.get("", response_model=PaginatedStudentResponse)
def list_students(
    db: Annotated[Session, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    department: str | None = None,
    level: str | None = None,
    status: str | None = None,
    search: str | None = None,
):
    """List students with filtering and pagination."""
    service = StudentService(db)
    filters = StudentFilter(department=department, level=level, status=status)
    return service.list_students(filters, search=search, page=page, page_size=page_size)


@router.get("/{student_id}", response_model=StudentResponse)
def get_student(
    student_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Get student details."""
    service = StudentService(db)
    return service.get_student(student_id)


@router.patch("/{student_id}", response_model=StudentResponse)
def update_student(
    student_id: int,
    request: StudentUpdate,
    db: Annotated[Session, Depends(get_db)],
):
    """Update a student."""
    service = StudentService(db)
    return service.update_student(student_id, request)


@router.get("/{student_id}/notification-stats", response_model=NotificationStats)
def get_student_notification_stats(
    student_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Notification counts for one student."""
    StudentService(db).get_student(student_id)
    return NotificationRecordStore(db).get_stats(student_id)
