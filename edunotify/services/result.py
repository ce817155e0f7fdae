"""Result entry and publish-side store operations."""

import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from edunotify.core.exceptions import NotFoundError, StoreError, ValidationError
from edunotify.models.course import Course
from edunotify.models.result import Result, ResultStatus
from edunotify.schemas.result import (
    CourseResultLine,
    ResultBatchCreate,
    ResultFilter,
    ResultResponse,
)
from edunotify.schemas.student import StudentRecord
from edunotify.services.grading import calculate_grade, validate_scores
from edunotify.services.student import StudentService, to_student_record

logger = logging.getLogger(__name__)


def to_result_line(result: Result) -> CourseResultLine | None:
    """Parse a result row joined with its course; None (logged) when malformed."""
    course = result.course
    if course is None:
        logger.warning(f"Skipping result id={result.id}: course {result.course_id} missing")
        return None
    try:
        return CourseResultLine(
            result_id=result.id,
            status=result.status,
            course_code=course.course_code,
            course_title=course.course_title,
            credit_units=course.credit_units,
            ca_score=result.ca_score,
            exam_score=result.exam_score,
            total_score=result.total_score,
            grade=result.grade,
            grade_point=result.grade_point,
            semester=result.semester,
            academic_year=result.academic_year,
        )
    except PydanticValidationError as exc:
        logger.warning(f"Skipping malformed result row id={result.id}: {exc.error_count()} error(s)")
        return None


class ResultService:
    """Result entry, listing and status transitions."""

    def __init__(self, db: Session):
        self.db = db

    def _record_to_response(self, result: Result) -> ResultResponse:
        return ResultResponse.model_validate(result)

    def create_results(self, request: ResultBatchCreate) -> list[ResultResponse]:
        """
        Record a student's results for one semester.

        Scores are validated and graded before anything is written; the
        student's CGPA is recomputed afterwards.
        """
        students = StudentService(self.db)
        student = students.get_student(request.student_id)

        course_ids = [entry.course_id for entry in request.entries]
        courses = {
            c.id: c
            for c in self.db.execute(select(Course).where(Course.id.in_(course_ids))).scalars().all()
        }
        missing = [cid for cid in course_ids if cid not in courses]
        if missing:
            raise NotFoundError("Course", ", ".join(str(cid) for cid in missing))

        # Validate everything before the first insert
        graded = []
        for entry in request.entries:
            course = courses[entry.course_id]
            total = validate_scores(entry.ca_score, entry.exam_score, label=course.course_code)
            graded.append((entry, total, calculate_grade(total)))

        duplicates = self.db.execute(
            select(Course.course_code)
            .join(Result, Result.course_id == Course.id)
            .where(
                Result.student_id == student.id,
                Result.course_id.in_(course_ids),
                Result.semester == request.semester,
                Result.academic_year == request.academic_year,
            )
        ).scalars().all()
        if duplicates:
            raise ValidationError(
                f"Results already exist for {student.student_id} in {request.semester} "
                f"{request.academic_year}: {', '.join(sorted(duplicates))}"
            )

        created = []
        for entry, total, grade in graded:
            result = Result(
                student_id=student.id,
                course_id=entry.course_id,
                ca_score=entry.ca_score,
                exam_score=entry.exam_score,
                total_score=total,
                grade=grade.letter,
                grade_point=grade.points,
                semester=request.semester,
                academic_year=request.academic_year,
                status=ResultStatus.PENDING,
            )
            self.db.add(result)
            created.append(result)
        self.db.flush()

        students.recompute_cgpa(student.id)
        logger.info(f"Recorded {len(created)} result(s) for student {student.student_id}")
        return [self._record_to_response(r) for r in created]

    def list_results(
        self,
        filters: ResultFilter | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[ResultResponse], int]:
        """List results with filtering."""
        query = select(Result)

        if filters:
            if filters.student_id:
                query = query.where(Result.student_id == filters.student_id)
            if filters.status:
                query = query.where(Result.status == filters.status)
            if filters.semester:
                query = query.where(Result.semester == filters.semester)
            if filters.academic_year:
                query = query.where(Result.academic_year == filters.academic_year)

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0

        query = (
            query
            .order_by(Result.created_at.desc(), Result.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        results = self.db.execute(query).scalars().all()
        return [self._record_to_response(r) for r in results], total

    # ==========================================
    # Publish pipeline
    # ==========================================

    def fetch_candidates(
        self,
        statuses: Iterable[ResultStatus],
    ) -> list[tuple[CourseResultLine, StudentRecord]]:
        """Results in the given statuses joined with student and course, validated."""
        try:
            rows = self.db.execute(
                select(Result)
                .options(selectinload(Result.student), selectinload(Result.course))
                .where(Result.status.in_(list(statuses)))
                .order_by(Result.student_id, Result.id)
                .execution_options(populate_existing=True)
            ).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to fetch results: {exc}") from exc

        candidates = []
        for row in rows:
            line = to_result_line(row)
            if line is None or row.student is None:
                continue
            student = to_student_record(row.student)
            if student is None:
                continue
            candidates.append((line, student))
        return candidates

    def mark_published(self, result_ids: list[int], published_at: datetime) -> int:
        """
        Flip unpublished results to published in one statement.

        Only rows still in draft/pending change, so a concurrent cycle that
        got there first is not double counted. Returns the rows updated.
        """
        if not result_ids:
            return 0
        try:
            outcome = self.db.execute(
                update(Result)
                .where(
                    Result.id.in_(result_ids),
                    Result.status.in_(ResultStatus.unpublished()),
                )
                .values(status=ResultStatus.PUBLISHED, published_at=published_at)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to update results status: {exc}") from exc
        return outcome.rowcount

    def lines_for_students(
        self,
        student_ids: list[int],
        statuses: Iterable[ResultStatus] | None = None,
    ) -> dict[int, list[CourseResultLine]]:
        """Each student's results from their most recent term, for SMS summaries."""
        query = (
            select(Result)
            .options(selectinload(Result.course))
            .where(Result.student_id.in_(student_ids))
            .order_by(Result.student_id, Result.academic_year.desc(), Result.semester.desc(), Result.id)
            .execution_options(populate_existing=True)
        )
        if statuses is not None:
            query = query.where(Result.status.in_(list(statuses)))
        try:
            rows = self.db.execute(query).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to fetch results: {exc}") from exc

        latest: dict[int, list[CourseResultLine]] = {}
        terms: dict[int, tuple[str, str]] = {}
        for row in rows:
            term = (row.academic_year, row.semester)
            if terms.setdefault(row.student_id, term) != term:
                continue
            line = to_result_line(row)
            if line is not None:
                latest.setdefault(row.student_id, []).append(line)
        return latest
