"""Email and SMS message templates rendered with Jinja2."""

import logging
from collections import OrderedDict
from datetime import datetime, timezone

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError, meta, select_autoescape
from jinja2.sandbox import SandboxedEnvironment
from pydantic import BaseModel

from edunotify.core.exceptions import TemplateRenderError
from edunotify.schemas.result import CourseResultLine, StudentResults
from edunotify.schemas.sms import SmsTemplateType
from edunotify.services.grading import FAILING_GRADES

logger = logging.getLogger(__name__)


RESULT_EMAIL_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Academic Results Published - {{ institution }}</title>
  <style>
    body { margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4; line-height: 1.6; }
    .email-container { max-width: 800px; margin: 0 auto; background-color: #ffffff; }
    .header { background-color: #2c3e50; color: white; padding: 20px; text-align: center; }
    .content { padding: 30px; }
    .student-info { background-color: #ecf0f1; padding: 20px; border-radius: 5px; margin-bottom: 30px; }
    .period-header { color: #2c3e50; margin-top: 30px; margin-bottom: 15px; font-size: 18px; }
    .results-table { width: 100%; border-collapse: collapse; margin-bottom: 20px; }
    .results-table thead th { background-color: #3498db; color: white; border: 1px solid #ddd; padding: 12px; text-align: left; }
    .results-table tbody td { border: 1px solid #ddd; padding: 10px; }
    .course-code, .total-score, .grade { font-weight: bold; }
    .grade { color: #e74c3c; }
    .next-steps { background-color: #e8f6f3; padding: 20px; border-radius: 5px; margin-top: 30px; }
    .footer { background-color: #34495e; color: #bdc3c7; padding: 15px; text-align: center; font-size: 12px; }
  </style>
</head>
<body>
  <div class="email-container">
    <div class="header">
      <h1>Academic Results Published</h1>
      <p>{{ institution }}</p>
    </div>
    <div class="content">
      <p class="greeting">Dear {{ student_name }},</p>
      <p>We are pleased to inform you that your academic results for the {{ semester }} semester,
      {{ academic_year }} session have been published and are now available for your review.</p>
      <div class="student-info">
        <h2>Student Information</h2>
        <table>
          <tr><td>Student ID:</td><td>{{ student_id }}</td></tr>
          <tr><td>Email:</td><td>{{ email }}</td></tr>
          <tr><td>Current CGPA:</td><td class="cgpa-value">{{ cgpa }}</td></tr>
        </table>
      </div>
      <div class="results-section">
        <h2>Academic Results</h2>
        {% for period, lines in periods.items() %}
        <div class="period-header">{{ period }}</div>
        <table class="results-table">
          <thead>
            <tr>
              <th>Course Code</th><th>Course Title</th><th>CA Score</th><th>Exam Score</th>
              <th>Total Score</th><th>Grade</th><th>Grade Point</th><th>Credit Units</th>
            </tr>
          </thead>
          <tbody>
            {% for line in lines %}
            <tr>
              <td class="course-code">{{ line.course_code }}</td>
              <td>{{ line.course_title }}</td>
              <td>{{ line.ca_score | score }}</td>
              <td>{{ line.exam_score | score }}</td>
              <td class="total-score">{{ line.total_score | score }}</td>
              <td class="grade">{{ line.grade }}</td>
              <td>{{ "%.1f" | format(line.grade_point) }}</td>
              <td>{{ line.credit_units }}</td>
            </tr>
            {% endfor %}
          </tbody>
        </table>
        {% endfor %}
      </div>
      <div class="next-steps">
        <h3>Next Steps:</h3>
        <ul>
          <li>Log in to your EduNotify student portal for detailed information</li>
          <li>Download your official transcript if needed</li>
          <li>Contact the Academic Affairs Office if you have any questions</li>
        </ul>
      </div>
    </div>
    <div class="footer">
      <p>This message was sent to <span class="email-address">{{ email }}</span></p>
      <p>Sent on {{ sent_on }}</p>
      <p>This is an official communication from {{ institution }}.</p>
    </div>
  </div>
</body>
</html>
"""

SMS_BASIC = """\
Hi {{ first_name }}!

Your exam results are published:
ID: {{ student_id }}
CGPA: {{ cgpa }}
New: {{ result_count }} course(s)

Check EduNotify portal for details.
- {{ institution }}"""

SMS_DETAILED = """\
{{ first_name }} - {{ semester }} {{ academic_year }} Results

ID: {{ student_id }}
CGPA: {{ cgpa }}

TOP COURSES:
{%- for course in top_courses[:3] %}
* {{ course.course_code }}: {{ course.grade }}
{%- endfor %}
{%- if top_courses | length > 3 %}
+ {{ top_courses | length - 3 }} more
{%- endif %}

View all on EduNotify portal.
- {{ institution }} Academic Affairs"""

SMS_GRADE_ALERT = """\
{{ first_name }} - Grade Summary

CGPA: {{ cgpa }}
Passed: {{ passed_courses }}
{%- if failed_courses > 0 %}
Failed: {{ failed_courses }}
{%- endif %}

Full details on EduNotify.
- {{ institution }} Academic"""

SMS_CUSTOM = "Hello {{ first_name }}, {{ message }} - {{ institution }}"

TEMPLATES = {
    "result_email.html": RESULT_EMAIL_HTML,
    "sms_basic.txt": SMS_BASIC,
    "sms_detailed.txt": SMS_DETAILED,
    "sms_grade_alert.txt": SMS_GRADE_ALERT,
    "sms_custom.txt": SMS_CUSTOM,
}

SMS_TEMPLATE_NAMES = {
    SmsTemplateType.BASIC: "sms_basic.txt",
    SmsTemplateType.DETAILED: "sms_detailed.txt",
    SmsTemplateType.GRADE_ALERT: "sms_grade_alert.txt",
    SmsTemplateType.CUSTOM: "sms_custom.txt",
}

# Placeholders an admin may use inside custom message text
CUSTOM_MESSAGE_PLACEHOLDERS = frozenset(
    {"student_name", "first_name", "student_id", "department", "level", "semester", "academic_year", "institution"}
)


# ==========================================
# Typed contexts
# ==========================================

class ResultEmailContext(BaseModel):
    """Everything the result email template needs."""

    institution: str
    student_name: str
    student_id: str
    email: str
    cgpa: str
    semester: str
    academic_year: str
    periods: dict[str, list[CourseResultLine]]
    sent_on: str


class SmsContext(BaseModel):
    """Everything the SMS templates need."""

    institution: str
    first_name: str
    student_id: str
    cgpa: str
    semester: str
    academic_year: str
    result_count: int = 0
    passed_courses: int = 0
    failed_courses: int = 0
    top_courses: list[CourseResultLine] = []
    message: str = ""


def format_cgpa(cgpa: float | None) -> str:
    return f"{cgpa:.2f}" if cgpa is not None else "N/A"


def _format_score(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:g}"


def build_result_email_context(
    group: StudentResults,
    institution: str,
    now: datetime | None = None,
) -> ResultEmailContext:
    """Group a student's results by "academic_year - semester" for the email body."""
    periods: OrderedDict[str, list[CourseResultLine]] = OrderedDict()
    for line in group.results:
        periods.setdefault(f"{line.academic_year} - {line.semester}", []).append(line)

    sent = now or datetime.now(timezone.utc)
    return ResultEmailContext(
        institution=institution,
        student_name=group.student.full_name,
        student_id=group.student.student_id,
        email=group.student.email or "",
        cgpa=format_cgpa(group.student.cgpa),
        semester=group.semester,
        academic_year=group.academic_year,
        periods=dict(periods),
        sent_on=sent.strftime("%B %d, %Y, %I:%M %p"),
    )


def build_sms_context(
    group: StudentResults,
    institution: str,
    message: str = "",
) -> SmsContext:
    """Summarize a student's results for the SMS templates."""
    graded = [line for line in group.results if line.grade]
    passed = [line for line in graded if line.grade.upper() not in FAILING_GRADES]
    failed = [line for line in graded if line.grade.upper() in FAILING_GRADES]
    top_courses = sorted(passed, key=lambda line: line.grade_point, reverse=True)

    return SmsContext(
        institution=institution,
        first_name=group.student.first_name,
        student_id=group.student.student_id,
        cgpa=format_cgpa(group.student.cgpa),
        semester=group.semester or "Current",
        academic_year=group.academic_year or str(datetime.now(timezone.utc).year),
        result_count=len(group.results),
        passed_courses=len(passed),
        failed_courses=len(failed),
        top_courses=top_courses,
        message=message,
    )


class TemplateRenderer:
    """Renders the built-in templates from typed contexts."""

    def __init__(self, institution: str):
        self.institution = institution
        self.env = Environment(
            loader=DictLoader(TEMPLATES),
            undefined=StrictUndefined,
            autoescape=select_autoescape(["html"]),
            trim_blocks=False,
        )
        self.env.filters["score"] = _format_score
        # Admin-written text is rendered in a sandbox
        self.sandbox = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)

    def required_placeholders(self, template_name: str) -> set[str]:
        """Variables a built-in template reads from its context."""
        source = TEMPLATES[template_name]
        return meta.find_undeclared_variables(self.env.parse(source))

    def _render(self, template_name: str, context: BaseModel) -> str:
        try:
            template = self.env.get_template(template_name)
            # Shallow: nested models keep attribute access
            return template.render(**dict(context))
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {template_name}: {exc}") from exc

    def render_result_email(self, group: StudentResults, now: datetime | None = None) -> str:
        context = build_result_email_context(group, self.institution, now=now)
        return self._render("result_email.html", context)

    def render_sms(
        self,
        template_type: SmsTemplateType,
        group: StudentResults,
        message: str = "",
    ) -> str:
        context = build_sms_context(group, self.institution, message=message)
        return self._render(SMS_TEMPLATE_NAMES[template_type], context)

    def render_custom_message(
        self,
        message: str,
        student_name: str,
        first_name: str,
        student_id: str,
        department: str = "",
        level: str = "",
        semester: str = "",
        academic_year: str = "",
    ) -> str:
        """Substitute ``{{student_name}}``-style placeholders in admin-written text."""
        try:
            unknown = meta.find_undeclared_variables(self.sandbox.parse(message)) - CUSTOM_MESSAGE_PLACEHOLDERS
            if unknown:
                raise TemplateRenderError(f"Unknown placeholders: {', '.join(sorted(unknown))}")
            return self.sandbox.from_string(message).render(
                student_name=student_name,
                first_name=first_name,
                student_id=student_id,
                department=department,
                level=level,
                semester=semester,
                academic_year=academic_year,
                institution=self.institution,
            )
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render custom message: {exc}") from exc
