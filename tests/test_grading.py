import pytest

from edunotify.core.exceptions import ValidationError
from edunotify.services.grading import calculate_cgpa, calculate_grade, validate_scores


class TestCalculateGrade:
    """Test the 5-point grade scale."""

    @pytest.mark.parametrize(
        "total, letter, points",
        [
            (100, "A", 5.0),
            (70, "A", 5.0),
            (69.9, "B", 4.0),
            (60, "B", 4.0),
            (50, "C", 3.0),
            (45, "D", 2.0),
            (40, "E", 1.0),
            (39.9, "F", 0.0),
            (0, "F", 0.0),
        ],
    )
    def test_boundaries(self, total, letter, points):
        grade = calculate_grade(total)
        assert grade.letter == letter
        assert grade.points == points

    def test_below_floor_is_still_f(self):
        assert calculate_grade(-5).letter == "F"

    def test_every_integer_total_has_a_grade(self):
        for total in range(0, 101):
            assert calculate_grade(total).letter in {"A", "B", "C", "D", "E", "F"}


class TestValidateScores:
    """Test score range checks done before any store call."""

    def test_valid_scores_return_total(self):
        assert validate_scores(25, 70) == 95
        assert calculate_grade(95).letter == "A"

    @pytest.mark.parametrize("ca, exam", [(31, 50), (-1, 50), (20, 71), (20, -0.5)])
    def test_out_of_range_rejected(self, ca, exam):
        with pytest.raises(ValidationError):
            validate_scores(ca, exam)

    def test_exam_over_seventy_rejected_even_when_total_fits(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_scores(20, 75, label="COM101")
        assert "Exam score invalid for COM101" in exc_info.value.message

    def test_total_over_hundred_rejected(self):
        with pytest.raises(ValidationError):
            validate_scores(20, 81)

    def test_error_is_rendered_as_422(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_scores(31, 0)
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["error"]["code"] == "VALIDATION_ERROR"


class TestCalculateCgpa:
    """Test credit-weighted CGPA."""

    def test_weighted_mean(self):
        # (5*3 + 3*2) / 5 = 4.2
        assert calculate_cgpa([(5.0, 3), (3.0, 2)]) == 4.2

    def test_rounded_to_two_places(self):
        assert calculate_cgpa([(5.0, 1), (4.0, 1), (4.0, 1)]) == 4.33

    def test_no_results(self):
        assert calculate_cgpa([]) is None
