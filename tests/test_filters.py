from edunotify.schemas.student import StudentFilter, StudentRecord
from edunotify.services.filters import filter_students


def _student(n: int, department: str, level: str = "ND1", status: str = "active") -> StudentRecord:
    return StudentRecord(
        id=n,
        student_id=f"S{n}",
        first_name=f"First{n}",
        last_name="Last",
        department=department,
        level=level,
        status=status,
    )


STUDENTS = [
    _student(1, "Computer Science"),
    _student(2, "Computer Science", level="ND2"),
    _student(3, "Accountancy"),
    _student(4, "Accountancy", status="inactive"),
]


class TestFilterStudents:
    """Test exact-match target selection for bulk sends."""

    def test_department_filter(self):
        selected = filter_students(STUDENTS, StudentFilter(department="Computer Science"))
        assert [s.id for s in selected] == [1, 2]

    def test_combined_filters(self):
        selected = filter_students(STUDENTS, StudentFilter(department="Accountancy", status="active"))
        assert [s.id for s in selected] == [3]

    def test_empty_filter_selects_everyone(self):
        assert filter_students(STUDENTS, StudentFilter()) == STUDENTS
        assert filter_students(STUDENTS, None) == STUDENTS

    def test_non_matching_filter_selects_no_one(self):
        assert filter_students(STUDENTS, StudentFilter(department="Law")) == []

    def test_matching_is_exact(self):
        assert filter_students(STUDENTS, StudentFilter(department="computer science")) == []
        assert filter_students(STUDENTS, StudentFilter(department="Computer")) == []
