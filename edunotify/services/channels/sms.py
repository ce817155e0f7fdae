"""SMS channel: client of the SMS side-service."""

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from edunotify.core.exceptions import ChannelError
from edunotify.schemas.sms import (
    SmsNotifyRequest,
    SmsNotifyResponse,
    SmsTemplateType,
    SmsTestRequest,
    SmsTestResponse,
)
from edunotify.services.channels.base import ChannelOutcome, ChannelSender, Recipient

logger = logging.getLogger(__name__)


class SmsChannel(ChannelSender):
    """
    Talks to the SMS side-service over HTTP.

    Batches are one call per publish cycle; the side-service resolves phone
    numbers and owns the per-message retry against the gateway.
    """

    name = "sms"

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def health(self) -> bool:
        """True iff the side-service reports all checks passing."""
        try:
            response = await self.client.get(
                f"{self.base_url}/api/health",
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"SMS service health check failed: {exc}")
            return False

        if response.status_code != 200:
            logger.warning(f"SMS service health check failed: {response.status_code}")
            return False
        return True

    async def send(self, recipient: Recipient, subject: str, body: str) -> ChannelOutcome:
        request = SmsTestRequest(phone_number=recipient.address, message=body)
        try:
            response = await self.client.post(
                f"{self.base_url}/api/test-sms",
                json=request.model_dump(by_alias=True),
            )
            result = SmsTestResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError, PydanticValidationError) as exc:
            return ChannelOutcome.failed(f"SMS service error: {exc}")

        if not result.success:
            return ChannelOutcome.failed(result.error or f"SMS service returned {response.status_code}")
        return ChannelOutcome.ok(reference=result.sid)

    async def send_batch(
        self,
        student_ids: list[int],
        title: str,
        message: str,
        template_type: SmsTemplateType = SmsTemplateType.BASIC,
        endpoint: str = "/api/notify-results",
    ) -> SmsNotifyResponse:
        """Send one batch call. Raises ChannelError when the call itself fails."""
        request = SmsNotifyRequest(
            student_ids=student_ids,
            title=title,
            message=message,
            template_type=template_type,
        )
        try:
            response = await self.client.post(
                f"{self.base_url}{endpoint}",
                json=request.model_dump(by_alias=True, mode="json"),
            )
        except httpx.HTTPError as exc:
            raise ChannelError(f"SMS service unavailable: {exc}") from exc

        if response.is_error:
            raise ChannelError(f"SMS service request failed with status {response.status_code}")

        try:
            return SmsNotifyResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise ChannelError(f"SMS service returned an unreadable response: {exc}") from exc
