import os

# Must be set before edunotify.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "")

from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from edunotify.core.database import Base, get_db
from edunotify.models import Course, Result, ResultStatus, Student
from edunotify.schemas.sms import SmsNotifyResponse, SmsTemplateType
from edunotify.services.channels.base import ChannelOutcome, ChannelSender, Recipient
from edunotify.services.channels.sms import SmsChannel
from edunotify.services.grading import calculate_grade
from edunotify.services.publisher import DeliveryPolicy, ResultPublisher
from edunotify.services.sms_gateway import SmsGatewayAdapter
from edunotify.services.templates import TemplateRenderer
from edunotify.sms_service.app import create_sms_application, get_gateway, get_notifier
from edunotify.sms_service.service import SmsNotifier


# Test database setup
TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"


@pytest.fixture
def test_engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session = Session(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==========================================
# Test doubles
# ==========================================

class FakeEmailChannel(ChannelSender):
    """Accepts every address except those in `failing`."""

    name = "email"

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.sent: list[tuple[Recipient, str, str]] = []
        self.attempts: dict[str, int] = {}

    async def send(self, recipient: Recipient, subject: str, body: str) -> ChannelOutcome:
        self.attempts[recipient.address] = self.attempts.get(recipient.address, 0) + 1
        if recipient.address in self.failing:
            return ChannelOutcome.failed("Email relay returned 500: upstream error")
        self.sent.append((recipient, subject, body))
        return ChannelOutcome.ok()


class FakeSmsChannel(SmsChannel):
    """Records batch calls and reports every student as delivered."""

    def __init__(self, healthy: bool = True):
        self.healthy = healthy
        self.batches: list[dict] = []

    async def health(self) -> bool:
        return self.healthy

    async def send_batch(
        self,
        student_ids: list[int],
        title: str,
        message: str,
        template_type: SmsTemplateType = SmsTemplateType.BASIC,
        endpoint: str = "/api/notify-results",
    ) -> SmsNotifyResponse:
        self.batches.append(
            {
                "student_ids": list(student_ids),
                "title": title,
                "message": message,
                "template_type": template_type,
                "endpoint": endpoint,
            }
        )
        return SmsNotifyResponse(
            sms_sent=len(student_ids),
            students_notified=len(student_ids),
            total=len(student_ids),
            delivered_student_ids=list(student_ids),
        )


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeGateway:
    """Answers like the gateway's Messages endpoint; fails for listed numbers."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.messages: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = dict(httpx.QueryParams(request.content.decode()))
        if form["To"] in self.failing:
            return httpx.Response(400, json={"message": "The 'To' number is not a valid phone number."})
        self.messages.append(form)
        return httpx.Response(201, json={"sid": f"SM{len(self.messages)}", "status": "queued"})


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def email_channel() -> FakeEmailChannel:
    return FakeEmailChannel()


@pytest.fixture
def sms_channel() -> FakeSmsChannel:
    return FakeSmsChannel()


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer("Test Polytechnic")


@pytest.fixture
def gateway_handler() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sms_gateway(gateway_handler, no_sleep) -> SmsGatewayAdapter:
    return SmsGatewayAdapter(
        httpx.AsyncClient(transport=httpx.MockTransport(gateway_handler)),
        account_sid="AC123",
        auth_token="secret",
        from_number="+15005550006",
        api_base="https://gateway.test",
        sleep=no_sleep,
    )


@pytest.fixture
def sms_service_app(db_session, sms_gateway, renderer, no_sleep):
    """Side-service app over the test database, with a custom batch cap of 3."""
    app = create_sms_application()

    def override_get_db():
        yield db_session
        db_session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: sms_gateway
    app.dependency_overrides[get_notifier] = lambda: SmsNotifier(
        db_session,
        gateway=sms_gateway,
        renderer=renderer,
        max_batch_size=3,
        send_delay_seconds=1.0,
        sleep=no_sleep,
    )
    return app


@pytest.fixture
async def sms_service_channel(sms_service_app) -> AsyncGenerator[SmsChannel, None]:
    """The real SMS channel talking to the side-service in-process."""
    transport = httpx.ASGITransport(app=sms_service_app)
    async with httpx.AsyncClient(transport=transport) as client:
        yield SmsChannel(client, "http://sms-service.test")


@pytest.fixture
def make_publisher(db_session, email_channel, sms_channel, renderer, no_sleep):
    """Build a publisher around the shared fakes; keyword overrides allowed."""

    def factory(**overrides) -> ResultPublisher:
        options = {
            "email_channel": email_channel,
            "sms_channel": sms_channel,
            "renderer": renderer,
            "policy": DeliveryPolicy(),
            "sleep": no_sleep,
        }
        options.update(overrides)
        return ResultPublisher(db_session, **options)

    return factory


# ==========================================
# Test data factories
# ==========================================

@pytest.fixture
def make_student(db_session: Session):
    counter = {"n": 0}

    def factory(**fields) -> Student:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "student_id": f"MAP/CS/{n:04d}",
            "first_name": f"Student{n}",
            "last_name": "Test",
            "email": f"student{n}@example.com",
            "phone": None,
            "department": "Computer Science",
            "level": "ND1",
            "status": "active",
        }
        values.update(fields)
        student = Student(**values)
        db_session.add(student)
        db_session.commit()
        return student

    return factory


@pytest.fixture
def make_course(db_session: Session):
    counter = {"n": 0}

    def factory(**fields) -> Course:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "course_code": f"COM{100 + n}",
            "course_title": f"Computing {n}",
            "credit_units": 3,
            "department": "Computer Science",
            "level": "ND1",
            "semester": "First",
        }
        values.update(fields)
        course = Course(**values)
        db_session.add(course)
        db_session.commit()
        return course

    return factory


@pytest.fixture
def make_result(db_session: Session):
    def factory(
        student: Student,
        course: Course,
        ca: float = 20,
        exam: float = 50,
        status: ResultStatus = ResultStatus.PENDING,
        semester: str = "First",
        academic_year: str = "2025/2026",
    ) -> Result:
        grade = calculate_grade(ca + exam)
        result = Result(
            student_id=student.id,
            course_id=course.id,
            ca_score=ca,
            exam_score=exam,
            total_score=ca + exam,
            grade=grade.letter,
            grade_point=grade.points,
            semester=semester,
            academic_year=academic_year,
            status=status,
        )
        db_session.add(result)
        db_session.commit()
        return result

    return factory
