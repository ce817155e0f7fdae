"""Target-set selection for bulk notification sends."""

from collections.abc import Iterable

from edunotify.schemas.student import StudentFilter, StudentRecord

FILTER_FIELDS = ("department", "level", "status")


def filter_students(
    students: Iterable[StudentRecord],
    filters: StudentFilter | None = None,
) -> list[StudentRecord]:
    """
    Return the students whose fields equal every provided filter value.

    Matching is exact: no substring, case folding or fuzzy comparison. An
    empty filter selects everyone; a filter nobody matches selects no one.
    """
    criteria = {}
    if filters is not None:
        criteria = {
            field: value
            for field in FILTER_FIELDS
            if (value := getattr(filters, field)) is not None and value != ""
        }

    return [
        student
        for student in students
        if all(getattr(student, field) == value for field, value in criteria.items())
    ]


def is_active(student: StudentRecord) -> bool:
    """Enrollment status check, tolerant of how admins capitalize it."""
    return student.status.strip().lower() == "active"
