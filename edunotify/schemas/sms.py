"""SMS side-service request/response contracts."""

import enum
from datetime import datetime

from pydantic import Field

from edunotify.schemas.common import CamelSchema


class SmsTemplateType(str, enum.Enum):
    """SMS message templates."""

    BASIC = "basic"
    DETAILED = "detailed"
    GRADE_ALERT = "grade_alert"
    CUSTOM = "custom"


class SmsNotifyRequest(CamelSchema):
    """Batch SMS request: one call covers every listed student."""

    student_ids: list[int] = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    template_type: SmsTemplateType = SmsTemplateType.BASIC
    test_mode: bool = False


class SmsDeliveryEntry(CamelSchema):
    """Per-student SMS receipt, truncated to a few entries in responses."""

    student: str
    student_id: str
    phone: str
    sid: str | None = None
    status: str | None = None
    message_length: int = 0


class SmsNotifyResponse(CamelSchema):
    """Aggregate outcome of a batch SMS call."""

    success: bool = True
    message: str | None = None
    results_published: int = 0
    students_notified: int = 0
    emails_sent: int = 0
    sms_sent: int = 0
    total: int = 0
    errors: list[str] = []
    delivered_student_ids: list[int] = []
    sms_results: list[SmsDeliveryEntry] = []
    template_used: SmsTemplateType | None = None
    test_mode: bool = False


class SmsTestRequest(CamelSchema):
    """Single test SMS."""

    phone_number: str = Field(..., min_length=3, max_length=50)
    message: str = Field(..., min_length=1, max_length=480)


class SmsTestResponse(CamelSchema):
    """Outcome of a single test SMS."""

    success: bool
    sid: str | None = None
    error: str | None = None


class SmsHealthResponse(CamelSchema):
    """Side-service health report."""

    status: str
    timestamp: datetime
    service: str
    version: str
    environment: str
    checks: dict[str, bool]
