"""Result publishing and notification fan-out."""

import asyncio
import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import RetryError

from edunotify.core.config import Settings
from edunotify.core.exceptions import ChannelError, StoreError, TemplateRenderError, ValidationError
from edunotify.core.retry import Sleep, linear_retrying
from edunotify.models.notification import NotificationType
from edunotify.models.result import ResultStatus
from edunotify.schemas.notification import DeliveryDetail, NotificationResult
from edunotify.schemas.result import CourseResultLine, StudentResults
from edunotify.schemas.sms import SmsTemplateType
from edunotify.schemas.student import StudentFilter, StudentRecord
from edunotify.services.channels.base import ChannelSender, Recipient
from edunotify.services.channels.sms import SmsChannel
from edunotify.services.contact import is_valid_email, normalize_phone
from edunotify.services.filters import is_active
from edunotify.services.notification import NotificationRecordStore
from edunotify.services.publish_lock import PublishLockService
from edunotify.services.result import ResultService
from edunotify.services.student import StudentService
from edunotify.services.templates import TemplateRenderer

logger = logging.getLogger(__name__)

RESULT_TITLE = "Results Published"
RESULT_RECORD_MESSAGE = "Your latest exam results have been published! Log in to view your results."
RESULT_SMS_MESSAGE = (
    "Your exam results have been published! Check your email for details "
    "or log in to EduNotify to view your results."
)
ENROLLMENT_TITLE = "Enrollment Confirmation"
ENROLLMENT_MESSAGE = (
    "Dear {{ student_name }},\n\n"
    "Your enrollment has been confirmed for the current academic session.\n\n"
    "Department: {{ department }}\n"
    "Level: {{ level }}\n\n"
    "Welcome to {{ institution }}!\n\n"
    "Best regards,\nAcademic Office"
)
TEST_TITLE = "Test Notification"
TEST_MESSAGE = "This is a test notification from {{ institution }}. Please ignore if received."


class PublishState(str, enum.Enum):
    """Stages of one publish cycle. Not resumable."""

    IDLE = "idle"
    FETCHING = "fetching"
    GROUPING = "grouping"
    TRANSITIONING = "transitioning"
    NOTIFYING = "notifying"
    RECORDING = "recording"
    DONE = "done"


@dataclass(frozen=True)
class DeliveryPolicy:
    """Email retry, pacing and batch size knobs."""

    email_max_attempts: int = 3
    email_retry_delay_seconds: float = 1.0
    email_send_delay_seconds: float = 0.1
    email_concurrency: int = 10
    max_custom_batch: int = 100
    sms_batch_size: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeliveryPolicy":
        return cls(
            email_max_attempts=settings.EMAIL_MAX_ATTEMPTS,
            email_retry_delay_seconds=settings.EMAIL_RETRY_DELAY_SECONDS,
            email_send_delay_seconds=settings.EMAIL_SEND_DELAY_SECONDS,
            email_concurrency=settings.EMAIL_CONCURRENCY,
            max_custom_batch=settings.SMS_MAX_BATCH_SIZE,
            sms_batch_size=settings.SMS_MAX_BATCH_SIZE,
        )


@dataclass
class EmailDelivery:
    success: bool
    attempts: int
    error: str | None = None


@dataclass
class DeliveryTally:
    """Accumulates counts, details and errors across one invocation."""

    emails_sent: int = 0
    sms_sent: int = 0
    success_details: list[DeliveryDetail] = field(default_factory=list)
    failure_details: list[DeliveryDetail] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def skip_invalid_email(self, student: StudentRecord) -> None:
        self.errors.append(f"Skipped {student.full_name}: invalid or missing email address")
        self.failure_details.append(
            DeliveryDetail(
                type="email",
                student=student.full_name,
                contact=student.email,
                student_id=student.student_id,
                error="Invalid or missing email address",
            )
        )

    def record_email(self, student: StudentRecord, delivery: EmailDelivery) -> None:
        if delivery.success:
            self.emails_sent += 1
            self.success_details.append(
                DeliveryDetail(
                    type="email",
                    student=student.full_name,
                    contact=student.email,
                    student_id=student.student_id,
                    attempts=delivery.attempts,
                )
            )
            return

        self.errors.append(
            f"Email failed for {student.full_name} ({student.email}) after {delivery.attempts} attempts"
        )
        self.failure_details.append(
            DeliveryDetail(
                type="email",
                student=student.full_name,
                contact=student.email,
                student_id=student.student_id,
                error=delivery.error or "Unknown error",
                attempts=delivery.attempts,
            )
        )

    def to_result(
        self,
        students_notified: int,
        results_published: int = 0,
        total: int | None = None,
        message: str | None = None,
    ) -> NotificationResult:
        return NotificationResult(
            success=True,
            results_published=results_published,
            students_notified=students_notified,
            emails_sent=self.emails_sent,
            sms_sent=self.sms_sent,
            total=students_notified if total is None else total,
            success_details=self.success_details,
            failure_details=self.failure_details,
            errors=self.errors,
            message=message,
        )


def group_results_by_student(
    candidates: Iterable[tuple[CourseResultLine, StudentRecord]],
) -> list[StudentResults]:
    """One entry per student, in first-seen order, holding all their results."""
    groups: dict[int, StudentResults] = {}
    for line, student in candidates:
        group = groups.get(student.id)
        if group is None:
            group = groups[student.id] = StudentResults(student=student, results=[])
        group.results.append(line)
    return list(groups.values())


class ResultPublisher:
    """
    Publishes pending results and notifies every affected student.

    Stages: fetch candidate results, group them per student, flip pending
    results to published in one conditional update, email each student
    (with retry) and send the SMS batches, then finalize one notification
    record per student. Store failures before the transition abort the
    cycle; channel failures are tallied and never abort it.
    """

    def __init__(
        self,
        db: Session,
        email_channel: ChannelSender,
        sms_channel: SmsChannel,
        renderer: TemplateRenderer,
        policy: DeliveryPolicy | None = None,
        renotify_published: bool = False,
        lock_ttl_seconds: int = 900,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.email_channel = email_channel
        self.sms_channel = sms_channel
        self.renderer = renderer
        self.policy = policy or DeliveryPolicy()
        self.renotify_published = renotify_published
        self.lock_ttl_seconds = lock_ttl_seconds
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = PublishState.IDLE

        self.results = ResultService(db)
        self.students = StudentService(db)
        self.records = NotificationRecordStore(db)

    def _enter(self, state: PublishState) -> None:
        logger.debug(f"Publish cycle: {self.state.value} -> {state.value}")
        self.state = state

    # ==========================================
    # Publish cycle
    # ==========================================

    async def publish_and_notify_results(self) -> NotificationResult:
        """Run one publish cycle under the publish lock."""
        lock = PublishLockService(self.db, ttl_seconds=self.lock_ttl_seconds)
        token = lock.acquire()
        try:
            return await self._run_publish_cycle()
        finally:
            try:
                lock.release(token)
            except SQLAlchemyError:
                logger.exception("Failed to release publish lock; it will expire on its own")
            self._enter(PublishState.DONE)

    async def _run_publish_cycle(self) -> NotificationResult:
        logger.info("Publishing results and sending notifications")

        self._enter(PublishState.FETCHING)
        statuses = list(ResultStatus.unpublished())
        if self.renotify_published:
            statuses.append(ResultStatus.PUBLISHED)
        try:
            candidates = self.results.fetch_candidates(statuses)
        except StoreError as exc:
            logger.error(f"Publish cycle aborted: {exc}")
            return NotificationResult.failure(str(exc))

        if not candidates:
            logger.info("No results found for notification")
            return NotificationResult(message="No pending results found")

        self._enter(PublishState.GROUPING)
        groups = group_results_by_student(candidates)

        self._enter(PublishState.TRANSITIONING)
        pending_ids = [line.result_id for line, _ in candidates if line.status in ResultStatus.unpublished()]
        try:
            published_count = self.results.mark_published(pending_ids, self.clock())
        except StoreError as exc:
            logger.error(f"Publish cycle aborted: {exc}")
            return NotificationResult.failure(str(exc))
        logger.info(f"Published {published_count} results")

        tally = DeliveryTally()
        eligible = []
        for group in groups:
            if is_valid_email(group.student.email):
                eligible.append(group)
            else:
                tally.skip_invalid_email(group.student)

        if eligible:
            self._enter(PublishState.NOTIFYING)
            records = self.records.open_records(
                [group.student.id for group in eligible],
                title=RESULT_TITLE,
                message=RESULT_RECORD_MESSAGE,
                notification_type=NotificationType.RESULT,
            )
            self._commit_records(tally)

            subject = f"Academic Results Published - {self.renderer.institution}"
            emails = await self._send_emails(
                eligible,
                subject,
                lambda group: self.renderer.render_result_email(group, now=self.clock()),
                tally,
            )
            delivered_sms = await self._send_sms_batch(
                [group.student for group in eligible],
                RESULT_TITLE,
                RESULT_SMS_MESSAGE,
                SmsTemplateType.BASIC,
                "/api/notify-results",
                tally,
            )

            self._enter(PublishState.RECORDING)
            self._close_records(records, emails, delivered_sms, tally)

        logger.info(
            f"Publish cycle finished: {published_count} published, {len(eligible)} notified, "
            f"{tally.emails_sent} emails, {tally.sms_sent} SMS, {len(tally.errors)} errors"
        )
        return tally.to_result(
            students_notified=len(eligible),
            results_published=published_count,
            message=f"Processed {len(candidates)} results, notified {len(eligible)} students",
        )

    # ==========================================
    # Custom and bulk sends
    # ==========================================

    async def send_custom_notification(
        self,
        student_ids: list[int],
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.CUSTOM,
    ) -> NotificationResult:
        """Notify an explicit set of students. Results are not touched."""
        self._validate_message(title, message)
        if not student_ids:
            raise ValidationError("Student IDs are required")
        if len(student_ids) > self.policy.max_custom_batch:
            raise ValidationError(f"Maximum {self.policy.max_custom_batch} students per batch")

        try:
            lookup = self.students.get_records(list(dict.fromkeys(student_ids)))
        except StoreError as exc:
            logger.error(f"Custom notification aborted: {exc}")
            return NotificationResult.failure(str(exc))

        tally = DeliveryTally()
        for student_id in lookup.missing:
            tally.errors.append(f"Student {student_id} not found")
        for student_id in lookup.malformed:
            tally.errors.append(f"Student {student_id} has an invalid record and was skipped")
        if not lookup.records:
            return tally.to_result(students_notified=0, message="No valid students to notify")
        return await self._send_to_students(lookup.records, title, message, notification_type, tally)

    async def send_enrollment_confirmation(self, student_ids: list[int]) -> NotificationResult:
        """Confirm enrollment for the listed students."""
        return await self.send_custom_notification(
            student_ids,
            ENROLLMENT_TITLE,
            ENROLLMENT_MESSAGE,
            notification_type=NotificationType.ENROLLMENT,
        )

    async def send_test_notification(self, count: int = 1) -> NotificationResult:
        """Send the canned test notification to the first `count` active students."""
        if count < 1 or count > self.policy.max_custom_batch:
            raise ValidationError(f"Count must be between 1 and {self.policy.max_custom_batch}")
        try:
            students = [student for student in self.students.find_records() if is_active(student)][:count]
        except StoreError as exc:
            logger.error(f"Test notification aborted: {exc}")
            return NotificationResult.failure(str(exc))

        tally = DeliveryTally()
        if not students:
            return tally.to_result(students_notified=0, message="No active students found")
        return await self._send_to_students(students, TEST_TITLE, TEST_MESSAGE, NotificationType.TEST, tally)

    async def send_bulk_notification(
        self,
        title: str,
        message: str,
        filters: StudentFilter | None = None,
        notification_type: NotificationType = NotificationType.ANNOUNCEMENT,
    ) -> NotificationResult:
        """Notify every student matching the filters."""
        self._validate_message(title, message)
        try:
            students = self.students.find_records(filters)
        except StoreError as exc:
            logger.error(f"Bulk notification aborted: {exc}")
            return NotificationResult.failure(str(exc))

        tally = DeliveryTally()
        if not students:
            return tally.to_result(students_notified=0, message="No students match the selected filters")
        return await self._send_to_students(students, title, message, notification_type, tally)

    def _validate_message(self, title: str, message: str) -> None:
        if not title or not title.strip() or not message or not message.strip():
            raise ValidationError("Both title and message are required")
        try:
            self.renderer.render_custom_message(
                message, student_name="", first_name="", student_id="", semester="", academic_year=""
            )
        except TemplateRenderError as exc:
            raise ValidationError(str(exc)) from exc

    async def _send_to_students(
        self,
        students: list[StudentRecord],
        title: str,
        message: str,
        notification_type: NotificationType,
        tally: DeliveryTally,
    ) -> NotificationResult:
        logger.info(f"Sending {notification_type.value} notification to {len(students)} students")

        records = self.records.open_records(
            [student.id for student in students],
            title=title,
            message=message,
            notification_type=notification_type,
        )
        self._commit_records(tally)

        eligible = []
        for student in students:
            if is_valid_email(student.email):
                eligible.append(StudentResults(student=student, results=[]))
            else:
                tally.skip_invalid_email(student)

        emails = await self._send_emails(
            eligible,
            title,
            lambda group: self.renderer.render_custom_message(
                message,
                student_name=group.student.full_name,
                first_name=group.student.first_name,
                student_id=group.student.student_id,
                department=group.student.department,
                level=group.student.level,
            ),
            tally,
        )
        # Students without email can still be reached by SMS
        delivered_sms = await self._send_sms_batch(
            students,
            title,
            message,
            SmsTemplateType.CUSTOM,
            "/api/notify-custom",
            tally,
        )

        self._close_records(records, emails, delivered_sms, tally)
        reached = {sid for sid, email in emails.items() if email.success} | delivered_sms
        return tally.to_result(
            students_notified=len(reached),
            total=len(students),
            message=f"Notified {len(reached)} of {len(students)} students",
        )

    # ==========================================
    # Channels
    # ==========================================

    async def _send_emails(
        self,
        groups: list[StudentResults],
        subject: str,
        render_body: Callable[[StudentResults], str],
        tally: DeliveryTally,
    ) -> dict[int, EmailDelivery]:
        """Email every group concurrently, bounded by the policy's concurrency."""
        semaphore = asyncio.Semaphore(self.policy.email_concurrency)

        async def bounded(group: StudentResults) -> EmailDelivery:
            async with semaphore:
                return await self._deliver_email(group, subject, render_body)

        logger.info(f"Sending email notifications to {len(groups)} students")
        outcomes = await asyncio.gather(*(bounded(group) for group in groups))

        deliveries = {}
        for group, delivery in zip(groups, outcomes):
            tally.record_email(group.student, delivery)
            deliveries[group.student.id] = delivery
        return deliveries

    async def _deliver_email(
        self,
        group: StudentResults,
        subject: str,
        render_body: Callable[[StudentResults], str],
    ) -> EmailDelivery:
        student = group.student
        try:
            body = render_body(group)
        except TemplateRenderError as exc:
            logger.error(f"Email for {student.full_name} not sent: {exc}")
            return EmailDelivery(success=False, attempts=0, error=str(exc))

        recipient = Recipient(address=student.email or "", name=student.full_name, student_id=student.student_id)
        retrying = linear_retrying(
            self.policy.email_max_attempts,
            self.policy.email_retry_delay_seconds,
            retry_on=(ChannelError,),
            sleep=self.sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    logger.debug(f"Sending email to {recipient.address}, attempt {attempts}")
                    outcome = await self.email_channel.send(recipient, subject, body)
                    if not outcome.success:
                        raise ChannelError(outcome.error or "Email rejected")
        except RetryError as exc:
            attempts = exc.last_attempt.attempt_number
            logger.error(f"Email failed for {student.full_name} ({recipient.address}) after {attempts} attempts")
            return EmailDelivery(success=False, attempts=attempts, error=str(exc.last_attempt.exception()))

        # Pace sends to stay under the relay's rate limit
        await self.sleep(self.policy.email_send_delay_seconds)
        return EmailDelivery(success=True, attempts=attempts)

    async def _send_sms_batch(
        self,
        students: list[StudentRecord],
        title: str,
        message: str,
        template_type: SmsTemplateType,
        endpoint: str,
        tally: DeliveryTally,
    ) -> set[int]:
        """SMS every student with a usable phone, in side-service sized batches. Returns delivered ids."""
        reachable = []
        for student in students:
            if normalize_phone(student.phone):
                reachable.append(student)
            else:
                tally.failure_details.append(
                    DeliveryDetail(
                        type="sms",
                        student=student.full_name,
                        contact=student.phone,
                        student_id=student.student_id,
                        error="Invalid phone number",
                    )
                )
        if not reachable:
            return set()

        if not await self.sms_channel.health():
            logger.warning("SMS service not available, skipping SMS notifications")
            tally.errors.append("SMS service unavailable")
            return set()

        delivered: set[int] = set()
        size = self.policy.sms_batch_size
        for start in range(0, len(reachable), size):
            chunk = reachable[start:start + size]
            try:
                response = await self.sms_channel.send_batch(
                    [student.id for student in chunk],
                    title,
                    message,
                    template_type=template_type,
                    endpoint=endpoint,
                )
            except ChannelError as exc:
                logger.error(f"SMS batch of {len(chunk)} students failed: {exc}")
                tally.errors.append(str(exc))
                continue

            tally.sms_sent += response.sms_sent
            tally.errors.extend(response.errors)
            delivered.update(response.delivered_student_ids)

        for student in reachable:
            if student.id in delivered:
                tally.success_details.append(
                    DeliveryDetail(
                        type="sms",
                        student=student.full_name,
                        contact=student.phone,
                        student_id=student.student_id,
                    )
                )
        logger.info(f"SMS sent to {len(delivered)} of {len(reachable)} students")
        return delivered

    # ==========================================
    # Records
    # ==========================================

    def _commit_records(self, tally: DeliveryTally) -> None:
        try:
            self.records.commit()
        except SQLAlchemyError as exc:
            logger.error(f"Failed to store notification records: {exc}")
            tally.errors.append("Failed to store notification records")

    def _close_records(
        self,
        records: dict,
        emails: dict[int, EmailDelivery],
        delivered_sms: set[int],
        tally: DeliveryTally,
    ) -> None:
        closed_at = self.clock()
        for student_id, record in records.items():
            email = emails.get(student_id)
            if email is None:
                error = "Invalid or missing email address"
            else:
                error = email.error
            self.records.close_record(
                record,
                email_sent=bool(email and email.success),
                sms_sent=student_id in delivered_sms,
                error=error,
                sent_at=closed_at,
            )
        self._commit_records(tally)
