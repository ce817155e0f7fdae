"""Email channel backed by a template-based email relay API."""

import logging

import httpx

from edunotify.core.config import Settings
from edunotify.services.channels.base import ChannelOutcome, ChannelSender, Recipient

logger = logging.getLogger(__name__)


class EmailChannel(ChannelSender):
    """
    Sends one templated transactional email per call.

    The relay receives `{service_id, template_id, user_id, template_params}`;
    the template on the relay side lays out `subject` and the rendered
    `message` body.
    """

    name = "email"

    def __init__(
        self,
        client: httpx.AsyncClient,
        relay_url: str,
        service_id: str,
        template_id: str,
        public_key: str,
        institution: str,
        from_name: str,
        from_address: str,
    ):
        self.client = client
        self.relay_url = relay_url
        self.service_id = service_id
        self.template_id = template_id
        self.public_key = public_key
        self.institution = institution
        self.from_name = from_name
        self.from_address = from_address

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> "EmailChannel":
        return cls(
            client=client,
            relay_url=settings.EMAIL_RELAY_URL,
            service_id=settings.EMAIL_SERVICE_ID,
            template_id=settings.EMAIL_TEMPLATE_ID,
            public_key=settings.EMAIL_PUBLIC_KEY,
            institution=settings.INSTITUTION_NAME,
            from_name=settings.EMAIL_FROM_NAME,
            from_address=settings.EMAIL_FROM_ADDRESS,
        )

    def build_payload(self, recipient: Recipient, subject: str, body: str) -> dict:
        return {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.public_key,
            "template_params": {
                "to_name": recipient.name,
                "to_email": recipient.address,
                "student_id": recipient.student_id,
                "subject": subject,
                "message": body,
                "institution": self.institution,
                "from_name": self.from_name,
                "from_email": self.from_address,
                "reply_to": self.from_address,
            },
        }

    async def send(self, recipient: Recipient, subject: str, body: str) -> ChannelOutcome:
        payload = self.build_payload(recipient, subject, body)
        try:
            response = await self.client.post(self.relay_url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning(f"Email relay unreachable for {recipient.address}: {exc}")
            return ChannelOutcome.failed(f"Email relay unreachable: {exc}")

        if response.is_error:
            detail = response.text[:200]
            logger.warning(f"Email relay rejected {recipient.address}: {response.status_code} {detail}")
            return ChannelOutcome.failed(f"Email relay returned {response.status_code}: {detail}")

        logger.debug(f"Email accepted for {recipient.address}")
        return ChannelOutcome.ok()
