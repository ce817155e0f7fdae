"""SMS gateway adapter for the Twilio Messages REST API."""

import asyncio
import logging
from dataclasses import dataclass

import httpx
from tenacity import RetryError

from edunotify.core.config import Settings
from edunotify.core.exceptions import SmsGatewayError
from edunotify.core.retry import Sleep, exponential_retrying

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmsReceipt:
    sid: str | None
    status: str | None
    attempt: int


class SmsGatewayAdapter:
    """
    Thin client for the gateway's send-message endpoint.

    Each send is retried up to `max_attempts` times with exponential backoff
    (base * 2**attempt seconds). Exhaustion raises SmsGatewayError.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com",
        max_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.max_attempts = max_attempts
        self.retry_base_seconds = retry_base_seconds
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        sleep: Sleep = asyncio.sleep,
    ) -> "SmsGatewayAdapter":
        return cls(
            client=client,
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_PHONE_NUMBER,
            api_base=settings.TWILIO_API_BASE,
            max_attempts=settings.SMS_MAX_ATTEMPTS,
            retry_base_seconds=settings.SMS_RETRY_BASE_SECONDS,
            sleep=sleep,
        )

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def has_sender(self) -> bool:
        return bool(self.from_number)

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    async def _send_once(self, phone_number: str, body: str, attempt: int) -> SmsReceipt:
        try:
            response = await self.client.post(
                self.messages_url,
                data={"From": self.from_number, "To": phone_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
            )
        except httpx.HTTPError as exc:
            raise SmsGatewayError(f"Gateway unreachable: {exc}") from exc

        if response.is_error:
            raise SmsGatewayError(f"Gateway returned {response.status_code}: {response.text[:200]}")

        payload = response.json()
        return SmsReceipt(sid=payload.get("sid"), status=payload.get("status"), attempt=attempt)

    async def send(self, phone_number: str, body: str) -> SmsReceipt:
        """Send one SMS to an E.164 number."""
        if not self.configured or not self.has_sender:
            raise SmsGatewayError("SMS gateway client not initialized")

        retrying = exponential_retrying(
            self.max_attempts,
            self.retry_base_seconds,
            retry_on=(SmsGatewayError,),
            sleep=self.sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    receipt = await self._send_once(phone_number, body, attempt.retry_state.attempt_number)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            logger.error(
                f"SMS to {phone_number} failed after {exc.last_attempt.attempt_number} attempts: {last_error}"
            )
            raise SmsGatewayError(str(last_error)) from last_error
        return receipt
