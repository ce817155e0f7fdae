"""Batch SMS delivery for the side-service."""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from edunotify.core.exceptions import (
    BadRequestError,
    ServiceUnavailableError,
    SmsGatewayError,
    TemplateRenderError,
)
from edunotify.core.retry import Sleep
from edunotify.models.result import ResultStatus
from edunotify.schemas.result import StudentResults
from edunotify.schemas.sms import (
    SmsDeliveryEntry,
    SmsNotifyRequest,
    SmsNotifyResponse,
    SmsTemplateType,
)
from edunotify.services.contact import normalize_phone
from edunotify.services.filters import is_active
from edunotify.services.result import ResultService
from edunotify.services.sms_gateway import SmsGatewayAdapter
from edunotify.services.student import StudentService
from edunotify.services.templates import TemplateRenderer

logger = logging.getLogger(__name__)

# Receipts echoed back per response
MAX_REPORTED_RESULTS = 10


class SmsNotifier:
    """
    Resolves students, renders one SMS each and hands it to the gateway.

    Sends are sequential with a fixed delay between them. A failed send is
    reported in `errors` and never stops the batch.
    """

    def __init__(
        self,
        db: Session,
        gateway: SmsGatewayAdapter,
        renderer: TemplateRenderer,
        max_batch_size: int = 100,
        send_delay_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.db = db
        self.gateway = gateway
        self.renderer = renderer
        self.max_batch_size = max_batch_size
        self.send_delay_seconds = send_delay_seconds
        self.sleep = sleep

    def store_available(self) -> bool:
        try:
            self.db.execute(select(1))
        except SQLAlchemyError as exc:
            logger.warning(f"Store health check failed: {exc}")
            return False
        return True

    def _validate(self, request: SmsNotifyRequest, limit_batch: bool) -> None:
        if limit_batch and len(request.student_ids) > self.max_batch_size:
            raise BadRequestError(f"Maximum {self.max_batch_size} students per batch")
        if not request.test_mode and not (self.gateway.configured and self.gateway.has_sender):
            raise ServiceUnavailableError("SMS gateway client not initialized")

    def _render(self, request: SmsNotifyRequest, group: StudentResults) -> str:
        if request.template_type == SmsTemplateType.CUSTOM:
            message = self.renderer.render_custom_message(
                request.message,
                student_name=group.student.full_name,
                first_name=group.student.first_name,
                student_id=group.student.student_id,
                department=group.student.department,
                level=group.student.level,
                semester=group.semester,
                academic_year=group.academic_year,
            )
            return self.renderer.render_sms(SmsTemplateType.CUSTOM, group, message=message)
        return self.renderer.render_sms(request.template_type, group, message=request.message)

    async def notify(
        self,
        request: SmsNotifyRequest,
        include_results: bool = True,
        limit_batch: bool = False,
    ) -> SmsNotifyResponse:
        """
        Send one SMS to every active student in the request.

        Raises StoreError when students or results cannot be read.
        """
        self._validate(request, limit_batch)

        lookup = StudentService(self.db).get_records(list(dict.fromkeys(request.student_ids)))
        errors = [f"Student {student_id} not found" for student_id in lookup.missing]
        errors.extend(f"Student {student_id} has an invalid record" for student_id in lookup.malformed)
        students = [student for student in lookup.records if is_active(student)]
        if not students:
            return SmsNotifyResponse(
                success=True,
                message="No active students found",
                errors=errors,
                template_used=request.template_type,
                test_mode=request.test_mode,
            )

        lines = {}
        if include_results:
            lines = ResultService(self.db).lines_for_students(
                [student.id for student in students],
                statuses=[ResultStatus.PUBLISHED],
            )

        logger.info(
            f"Sending {request.template_type.value} SMS to {len(students)} students"
            f"{' (test mode)' if request.test_mode else ''}"
        )

        delivered: list[int] = []
        receipts: list[SmsDeliveryEntry] = []
        first_send = True
        for student in students:
            phone = normalize_phone(student.phone, e164=True)
            if not phone:
                errors.append(f"Invalid phone number for {student.full_name}")
                continue

            group = StudentResults(student=student, results=lines.get(student.id, []))
            try:
                body = self._render(request, group)
            except TemplateRenderError as exc:
                errors.append(f"Failed to render SMS for {student.full_name}: {exc}")
                continue

            if request.test_mode:
                delivered.append(student.id)
                receipts.append(
                    SmsDeliveryEntry(
                        student=student.full_name,
                        student_id=student.student_id,
                        phone=phone,
                        status="test",
                        message_length=len(body),
                    )
                )
                continue

            if not first_send:
                await self.sleep(self.send_delay_seconds)
            first_send = False

            try:
                receipt = await self.gateway.send(phone, body)
            except SmsGatewayError as exc:
                errors.append(f"SMS failed for {student.full_name}: {exc}")
                continue

            delivered.append(student.id)
            receipts.append(
                SmsDeliveryEntry(
                    student=student.full_name,
                    student_id=student.student_id,
                    phone=phone,
                    sid=receipt.sid,
                    status=receipt.status,
                    message_length=len(body),
                )
            )

        logger.info(f"SMS batch finished: {len(delivered)} sent, {len(errors)} errors")
        return SmsNotifyResponse(
            success=True,
            message=f"SMS notifications sent to {len(delivered)} students",
            sms_sent=len(delivered),
            students_notified=len(delivered),
            total=len(students),
            errors=errors,
            delivered_student_ids=delivered,
            sms_results=receipts[:MAX_REPORTED_RESULTS],
            template_used=request.template_type,
            test_mode=request.test_mode,
        )
