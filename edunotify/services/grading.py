"""Grade computation for result entry."""

from collections.abc import Iterable
from dataclasses import dataclass

from edunotify.core.exceptions import ValidationError

CA_MAX = 30
EXAM_MAX = 70
TOTAL_MAX = 100

# Failing letters, used by SMS grade summaries
FAILING_GRADES = frozenset({"E", "F"})


@dataclass(frozen=True)
class Grade:
    letter: str
    points: float


# Descending thresholds; the zero floor guarantees a match
GRADE_SCALE: tuple[tuple[float, Grade], ...] = (
    (70, Grade("A", 5.0)),
    (60, Grade("B", 4.0)),
    (50, Grade("C", 3.0)),
    (45, Grade("D", 2.0)),
    (40, Grade("E", 1.0)),
    (0, Grade("F", 0.0)),
)


def calculate_grade(total: float) -> Grade:
    """Map a total score to its letter grade and grade point."""
    for minimum, grade in GRADE_SCALE:
        if total >= minimum:
            return grade
    # Below the floor is a caller validation problem; still an F
    return GRADE_SCALE[-1][1]


def validate_scores(ca_score: float, exam_score: float, label: str = "result") -> float:
    """Validate CA/exam ranges and return the total. Raises ValidationError."""
    if ca_score < 0 or ca_score > CA_MAX:
        raise ValidationError(
            f"CA score invalid for {label}: must be between 0 and {CA_MAX}",
            details={"ca_score": ca_score},
        )
    if exam_score < 0 or exam_score > EXAM_MAX:
        raise ValidationError(
            f"Exam score invalid for {label}: must be between 0 and {EXAM_MAX}",
            details={"exam_score": exam_score},
        )
    total = ca_score + exam_score
    if total > TOTAL_MAX:
        raise ValidationError(
            f"Total exceeds {TOTAL_MAX} for {label}",
            details={"total_score": total},
        )
    return total


def calculate_cgpa(entries: Iterable[tuple[float, int]]) -> float | None:
    """Credit-weighted grade point average from (grade_point, credit_units) pairs."""
    weighted = 0.0
    units = 0
    for grade_point, credit_units in entries:
        weighted += grade_point * credit_units
        units += credit_units
    if units == 0:
        return None
    return round(weighted / units, 2)
