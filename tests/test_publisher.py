from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from edunotify.core.exceptions import PublishInProgressError, StoreError, ValidationError
from edunotify.models import NotificationRecord, NotificationStatus, NotificationType, Result, ResultStatus
from edunotify.models.publish_lock import PublishLock
from edunotify.schemas.student import StudentFilter
from edunotify.services.publish_lock import RESULT_PUBLISH_LOCK
from edunotify.services.publisher import DeliveryPolicy, PublishState

from tests.conftest import FakeEmailChannel, FakeSmsChannel


def _records(db_session) -> list[NotificationRecord]:
    return list(db_session.execute(select(NotificationRecord).order_by(NotificationRecord.id)).scalars())


def _results(db_session) -> list[Result]:
    db_session.expire_all()
    return list(db_session.execute(select(Result).order_by(Result.id)).scalars())


class TestPublishCycle:
    """Test publish-and-notify end to end against the fakes."""

    async def test_partial_failure_does_not_stop_the_cycle(
        self, db_session, make_student, make_course, make_result, make_publisher, no_sleep
    ):
        course = make_course()
        skipped = make_student(first_name="Ngozi", last_name="Eze", email="not-an-email")
        failing = make_student(email="failing@example.com")
        ok = make_student(email="ok@example.com")
        for student in (skipped, failing, ok):
            make_result(student, course)

        email_channel = FakeEmailChannel(failing={"failing@example.com"})
        publisher = make_publisher(email_channel=email_channel)
        result = await publisher.publish_and_notify_results()

        assert result.success
        assert result.results_published == 3
        assert result.students_notified == 2
        assert result.emails_sent == 1
        assert len(result.errors) == 2
        assert "Skipped Ngozi Eze: invalid or missing email address" in result.errors
        assert any("failing@example.com" in error and "3 attempts" in error for error in result.errors)
        assert email_channel.attempts["failing@example.com"] == 3
        assert publisher.state == PublishState.DONE

        assert all(r.status == ResultStatus.PUBLISHED for r in _results(db_session))

        # Retry waits for the failing address plus the pacing delay for the success
        assert sorted(no_sleep.delays) == [0.1, 1.0, 2.0]

        records = {r.student_id: r for r in _records(db_session)}
        assert set(records) == {failing.id, ok.id}
        assert records[ok.id].status == NotificationStatus.SENT
        assert records[ok.id].sent_at is not None
        assert records[failing.id].status == NotificationStatus.FAILED
        assert records[failing.id].sent_at is None
        assert "500" in records[failing.id].error

    async def test_publishing_twice_is_idempotent(
        self, db_session, make_student, make_course, make_result, make_publisher, email_channel
    ):
        make_result(make_student(), make_course())
        publisher = make_publisher()

        first = await publisher.publish_and_notify_results()
        second = await publisher.publish_and_notify_results()

        assert first.results_published == 1
        assert second.success
        assert second.results_published == 0
        assert second.errors == []
        assert second.message == "No pending results found"
        assert len(email_channel.sent) == 1
        assert len(_records(db_session)) == 1

    async def test_results_are_grouped_per_student(
        self, db_session, make_student, make_course, make_result, make_publisher, email_channel
    ):
        student = make_student()
        make_result(student, make_course(), ca=25, exam=60)
        make_result(student, make_course(), ca=10, exam=30)

        result = await make_publisher().publish_and_notify_results()

        assert result.results_published == 2
        assert result.students_notified == 1
        assert len(email_channel.sent) == 1
        _, subject, body = email_channel.sent[0]
        assert subject == "Academic Results Published - Test Polytechnic"
        assert "COM101" in body and "COM102" in body

        records = _records(db_session)
        assert len(records) == 1
        assert records[0].notification_type == NotificationType.RESULT

        published = _results(db_session)
        assert {r.status for r in published} == {ResultStatus.PUBLISHED}
        assert published[0].published_at is not None
        assert published[0].published_at == published[1].published_at

    async def test_draft_results_are_published_too(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        make_result(make_student(), make_course(), status=ResultStatus.DRAFT)

        result = await make_publisher().publish_and_notify_results()

        assert result.results_published == 1
        assert _results(db_session)[0].status == ResultStatus.PUBLISHED

    async def test_malformed_rows_are_skipped(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        student = make_student()
        good = make_result(student, make_course())
        # Out of range CA written around the entry validation
        bad = make_result(student, make_course(), ca=45, exam=40)

        result = await make_publisher().publish_and_notify_results()

        assert result.results_published == 1
        statuses = {r.id: r.status for r in _results(db_session)}
        assert statuses[good.id] == ResultStatus.PUBLISHED
        assert statuses[bad.id] == ResultStatus.PENDING

    async def test_no_results(self, make_publisher, email_channel):
        result = await make_publisher().publish_and_notify_results()

        assert result.success
        assert result.results_published == 0
        assert email_channel.sent == []

    async def test_store_failure_aborts_the_cycle(
        self, db_session, make_student, make_course, make_result, make_publisher, email_channel
    ):
        make_result(make_student(), make_course())
        publisher = make_publisher()

        def broken(statuses):
            raise StoreError("Failed to fetch results: connection lost")

        publisher.results.fetch_candidates = broken
        result = await publisher.publish_and_notify_results()

        assert not result.success
        assert result.errors == ["Failed to fetch results: connection lost"]
        assert email_channel.sent == []
        assert db_session.execute(select(PublishLock)).first() is None


class TestPublishSms:
    """Test the SMS leg of a publish cycle."""

    async def test_one_batch_for_students_with_valid_phones(
        self, db_session, make_student, make_course, make_result, make_publisher, sms_channel
    ):
        course = make_course()
        with_phone = make_student(phone="0803 123 4567")
        bad_phone = make_student(phone="12345")
        no_phone = make_student(phone=None)
        for student in (with_phone, bad_phone, no_phone):
            make_result(student, course)

        result = await make_publisher().publish_and_notify_results()

        assert len(sms_channel.batches) == 1
        batch = sms_channel.batches[0]
        assert batch["student_ids"] == [with_phone.id]
        assert batch["endpoint"] == "/api/notify-results"
        assert result.sms_sent == 1
        assert result.emails_sent == 3
        sms_failures = [d for d in result.failure_details if d.type == "sms"]
        assert len(sms_failures) == 2

        records = {r.student_id: r for r in _records(db_session)}
        assert records[with_phone.id].sms_sent
        assert not records[bad_phone.id].sms_sent

    async def test_unhealthy_sms_service_adds_one_error(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        course = make_course()
        for _ in range(2):
            make_result(make_student(phone="08012345678"), course)

        sms_channel = FakeSmsChannel(healthy=False)
        result = await make_publisher(sms_channel=sms_channel).publish_and_notify_results()

        assert result.errors == ["SMS service unavailable"]
        assert result.sms_sent == 0
        assert sms_channel.batches == []
        assert all(r.status == NotificationStatus.SENT for r in _records(db_session))

    async def test_sms_alone_marks_record_sent(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        student = make_student(email="down@example.com", phone="08012345678")
        make_result(student, make_course())

        email_channel = FakeEmailChannel(failing={"down@example.com"})
        result = await make_publisher(email_channel=email_channel).publish_and_notify_results()

        assert result.emails_sent == 0
        assert result.sms_sent == 1
        record = _records(db_session)[0]
        assert record.status == NotificationStatus.SENT
        assert record.email_sent is False
        assert record.sms_sent is True


class TestPublishLock:
    """Test overlapping publish cycles."""

    async def test_held_lock_rejects_a_second_cycle(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        make_result(make_student(), make_course())
        now = datetime.now(timezone.utc)
        db_session.add(
            PublishLock(
                name=RESULT_PUBLISH_LOCK,
                token="someone-else",
                acquired_at=now,
                expires_at=now + timedelta(minutes=10),
            )
        )
        db_session.commit()

        with pytest.raises(PublishInProgressError) as exc_info:
            await make_publisher().publish_and_notify_results()

        assert exc_info.value.status_code == 409
        assert _results(db_session)[0].status == ResultStatus.PENDING

    async def test_expired_lock_is_taken_over_and_released(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        make_result(make_student(), make_course())
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        db_session.add(
            PublishLock(
                name=RESULT_PUBLISH_LOCK,
                token="crashed-run",
                acquired_at=past,
                expires_at=past + timedelta(minutes=15),
            )
        )
        db_session.commit()

        result = await make_publisher().publish_and_notify_results()

        assert result.results_published == 1
        db_session.expire_all()
        assert db_session.execute(select(PublishLock)).first() is None


class TestRenotify:
    async def test_published_results_renotified_when_enabled(
        self, db_session, make_student, make_course, make_result, make_publisher, email_channel
    ):
        make_result(make_student(), make_course(), status=ResultStatus.PUBLISHED)

        quiet = await make_publisher().publish_and_notify_results()
        assert email_channel.sent == []
        assert quiet.students_notified == 0

        loud = await make_publisher(renotify_published=True).publish_and_notify_results()
        assert loud.results_published == 0
        assert loud.students_notified == 1
        assert len(email_channel.sent) == 1


class TestCustomNotification:
    """Test sends to an explicit list of students."""

    async def test_custom_send(
        self, db_session, make_student, make_course, make_result, make_publisher, email_channel, sms_channel
    ):
        with_email = make_student(first_name="Ada", last_name="Obi")
        sms_only = make_student(email=None, phone="08012345678")
        pending = make_result(with_email, make_course())

        result = await make_publisher().send_custom_notification(
            [with_email.id, sms_only.id, 999],
            "Fees reminder",
            "Dear {{student_name}}, please pay your fees.",
        )

        assert result.success
        assert result.results_published == 0
        assert result.emails_sent == 1
        assert result.sms_sent == 1
        assert result.students_notified == 2
        assert result.total == 2
        assert "Student 999 not found" in result.errors

        recipient, subject, body = email_channel.sent[0]
        assert recipient.address == with_email.email
        assert subject == "Fees reminder"
        assert body == "Dear Ada Obi, please pay your fees."

        assert sms_channel.batches[0]["endpoint"] == "/api/notify-custom"
        assert sms_channel.batches[0]["student_ids"] == [sms_only.id]

        records = _records(db_session)
        assert len(records) == 2
        assert {r.notification_type for r in records} == {NotificationType.CUSTOM}
        assert {r.status for r in records} == {NotificationStatus.SENT}

        # Custom sends never touch results
        assert _results(db_session)[0].status == ResultStatus.PENDING
        assert pending.published_at is None

    async def test_student_without_any_channel_gets_failed_record(
        self, db_session, make_student, make_publisher
    ):
        student = make_student(email="", phone=None)

        result = await make_publisher().send_custom_notification([student.id], "Hi", "Hello")

        assert result.students_notified == 0
        record = _records(db_session)[0]
        assert record.status == NotificationStatus.FAILED
        assert record.error == "Invalid or missing email address"

    @pytest.mark.parametrize(
        "title, message",
        [("", "Hello"), ("Hi", ""), ("   ", "Hello"), ("Hi", "Hello {{password}}")],
    )
    async def test_invalid_messages_rejected(self, make_student, make_publisher, email_channel, title, message):
        student = make_student()
        with pytest.raises(ValidationError):
            await make_publisher().send_custom_notification([student.id], title, message)
        assert email_channel.sent == []

    async def test_batch_limit(self, make_publisher):
        publisher = make_publisher(policy=DeliveryPolicy(max_custom_batch=2))
        with pytest.raises(ValidationError, match="Maximum 2 students"):
            await publisher.send_custom_notification([1, 2, 3], "Hi", "Hello")


class TestBulkNotification:
    """Test filter-targeted sends."""

    async def test_bulk_send_to_department(self, db_session, make_student, make_publisher, email_channel):
        make_student(department="Computer Science")
        make_student(department="Computer Science")
        make_student(department="Accountancy")

        result = await make_publisher().send_bulk_notification(
            "Lecture moved",
            "Hello {{first_name}}, CSC lectures now hold in Hall B.",
            filters=StudentFilter(department="Computer Science"),
        )

        assert result.emails_sent == 2
        assert len(email_channel.sent) == 2
        records = _records(db_session)
        assert len(records) == 2
        assert {r.notification_type for r in records} == {NotificationType.ANNOUNCEMENT}

    async def test_no_matching_students(self, db_session, make_student, make_publisher, email_channel):
        make_student(department="Accountancy")

        result = await make_publisher().send_bulk_notification(
            "Hi", "Hello", filters=StudentFilter(department="Law")
        )

        assert result.success
        assert result.students_notified == 0
        assert result.message == "No students match the selected filters"
        assert email_channel.sent == []
        assert _records(db_session) == []


class TestSmsServiceBatches:
    """Test the SMS leg against the real side-service app."""

    async def test_publish_splits_large_batches(
        self, db_session, make_student, make_course, make_result, make_publisher, sms_service_channel, gateway_handler
    ):
        course = make_course()
        students = [make_student(phone=f"0801234567{n}") for n in range(4)]
        for student in students:
            make_result(student, course)

        publisher = make_publisher(sms_channel=sms_service_channel, policy=DeliveryPolicy(sms_batch_size=3))
        result = await publisher.publish_and_notify_results()

        assert result.results_published == 4
        assert result.students_notified == 4
        assert result.sms_sent == 4
        assert result.errors == []
        assert len(gateway_handler.messages) == 4
        assert all(r.sms_sent for r in _records(db_session))

    async def test_custom_send_stays_under_the_service_cap(
        self, db_session, make_student, make_publisher, sms_service_channel, gateway_handler
    ):
        # The side-service accepts at most 3 students per custom call
        students = [make_student(phone=f"0801234567{n}") for n in range(5)]

        publisher = make_publisher(sms_channel=sms_service_channel, policy=DeliveryPolicy(sms_batch_size=3))
        result = await publisher.send_custom_notification(
            [s.id for s in students], "Fees", "Hello {{first_name}}, fees are due."
        )

        assert result.sms_sent == 5
        assert result.errors == []
        assert [m["To"] for m in gateway_handler.messages] == [f"+234801234567{n}" for n in range(5)]

    async def test_oversized_batch_is_reported_not_dropped(
        self, db_session, make_student, make_publisher, sms_service_channel, gateway_handler
    ):
        students = [make_student(phone=f"0801234567{n}") for n in range(4)]

        publisher = make_publisher(sms_channel=sms_service_channel, policy=DeliveryPolicy(sms_batch_size=10))
        result = await publisher.send_custom_notification([s.id for s in students], "Fees", "Due Friday")

        assert result.sms_sent == 0
        assert result.errors == ["SMS service request failed with status 400"]
        assert result.students_notified == 4
        assert gateway_handler.messages == []


class TestRecordTimestamps:
    async def test_records_use_the_publish_clock(
        self, db_session, make_student, make_course, make_result, make_publisher
    ):
        fixed = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
        make_result(make_student(), make_course())

        await make_publisher(clock=lambda: fixed).publish_and_notify_results()

        db_session.expire_all()
        record = _records(db_session)[0]
        assert record.sent_at.replace(tzinfo=None) == fixed.replace(tzinfo=None)
        assert _results(db_session)[0].published_at.replace(tzinfo=None) == fixed.replace(tzinfo=None)


class TestMalformedTargets:
    async def test_invalid_student_row_is_reported(self, db_session, make_student, make_publisher, email_channel):
        good = make_student()
        broken = make_student(first_name="")

        result = await make_publisher().send_custom_notification([good.id, broken.id], "Hi", "Hello")

        assert f"Student {broken.id} has an invalid record and was skipped" in result.errors
        assert result.total == 1
        assert [recipient.address for recipient, _, _ in email_channel.sent] == [good.email]
        assert [r.student_id for r in _records(db_session)] == [good.id]

    async def test_only_invalid_rows(self, db_session, make_student, make_publisher, email_channel):
        broken = make_student(last_name="")

        result = await make_publisher().send_custom_notification([broken.id], "Hi", "Hello")

        assert result.errors == [f"Student {broken.id} has an invalid record and was skipped"]
        assert result.students_notified == 0
        assert email_channel.sent == []
        assert _records(db_session) == []


class TestEnrollmentAndTestSends:
    """Test the canned notification sends."""

    async def test_enrollment_confirmation(self, db_session, make_student, make_publisher, email_channel, sms_channel):
        student = make_student(
            first_name="Ada", last_name="Obi", department="Accountancy", level="HND1", phone="08012345678"
        )

        result = await make_publisher().send_enrollment_confirmation([student.id])

        assert result.emails_sent == 1
        assert result.sms_sent == 1
        _, subject, body = email_channel.sent[0]
        assert subject == "Enrollment Confirmation"
        assert body.startswith("Dear Ada Obi,")
        assert "Department: Accountancy\nLevel: HND1" in body
        assert "Welcome to Test Polytechnic!" in body
        assert sms_channel.batches[0]["endpoint"] == "/api/notify-custom"
        assert _records(db_session)[0].notification_type == NotificationType.ENROLLMENT

    async def test_test_notification_goes_to_first_active_students(
        self, db_session, make_student, make_publisher, email_channel
    ):
        make_student(status="Inactive")
        first = make_student(status="Active")
        second = make_student()
        make_student()

        result = await make_publisher().send_test_notification(count=2)

        assert result.emails_sent == 2
        assert {recipient.address for recipient, _, _ in email_channel.sent} == {first.email, second.email}
        assert email_channel.sent[0][2] == (
            "This is a test notification from Test Polytechnic. Please ignore if received."
        )
        assert {r.notification_type for r in _records(db_session)} == {NotificationType.TEST}

    async def test_test_notification_without_active_students(self, make_student, make_publisher, email_channel):
        make_student(status="graduated")

        result = await make_publisher().send_test_notification()

        assert result.success
        assert result.message == "No active students found"
        assert email_channel.sent == []

    async def test_test_notification_count_is_bounded(self, make_publisher):
        with pytest.raises(ValidationError):
            await make_publisher().send_test_notification(count=0)
