"""Result entry and publishing endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from edunotify.core.database import get_db
from edunotify.core.dependencies import Publisher
from edunotify.models.result import ResultStatus
from edunotify.schemas.common import PaginatedResponse
from edunotify.schemas.notification import NotificationResult
from edunotify.schemas.result import ResultBatchCreate, ResultFilter, ResultResponse
from edunotify.services.result import ResultService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=list[ResultResponse])
def create_results(
    request: ResultBatchCreate,
    db: Annotated[Session, Depends(get_db)],
):
    """Record a student's semester results. New results start as pending."""
    service = ResultService(db)
    return service.create_results(request)


@router.get("", response_model=PaginatedResponse[ResultResponse])
def list_results(
    db: Annotated[Session, Depends(get_db)],
    student_id: int | None = None,
    status: ResultStatus | None = None,
    semester: str | None = None,
    academic_year: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """List results with filtering and pagination."""
    service = ResultService(db)
    filters = ResultFilter(
        student_id=student_id,
        status=status,
        semester=semester,
        academic_year=academic_year,
    )
    items, total = service.list_results(filters, page=page, page_size=page_size)
    return PaginatedResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
    )


@router.post("/publish", response_model=NotificationResult, response_model_by_alias=True)
async def publish_results(publisher: Publisher):
    """
    Publish every pending result and notify the affected students.

    Returns 409 while another publish cycle is running.
    """
    return await publisher.publish_and_notify_results()
