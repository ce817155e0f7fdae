"""FastAPI dependency injection utilities."""

from collections.abc import AsyncGenerator
from typing import Annotated

import httpx
from fastapi import Depends
from sqlalchemy.orm import Session

from edunotify.core.config import Settings, get_settings
from edunotify.core.database import get_db
from edunotify.services.channels.email import EmailChannel
from edunotify.services.channels.sms import SmsChannel
from edunotify.services.publisher import DeliveryPolicy, ResultPublisher
from edunotify.services.templates import TemplateRenderer


async def get_http_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound HTTP client, closed when the request finishes."""
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


def get_renderer(settings: Annotated[Settings, Depends(get_settings)]) -> TemplateRenderer:
    return TemplateRenderer(settings.INSTITUTION_NAME)


def get_email_channel(
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> EmailChannel:
    return EmailChannel.from_settings(settings, client)


def get_sms_channel(
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> SmsChannel:
    return SmsChannel(client, settings.SMS_SERVICE_URL)


def get_publisher(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    email_channel: Annotated[EmailChannel, Depends(get_email_channel)],
    sms_channel: Annotated[SmsChannel, Depends(get_sms_channel)],
    renderer: Annotated[TemplateRenderer, Depends(get_renderer)],
) -> ResultPublisher:
    """Publisher wired to the request's session and channels."""
    return ResultPublisher(
        db,
        email_channel=email_channel,
        sms_channel=sms_channel,
        renderer=renderer,
        policy=DeliveryPolicy.from_settings(settings),
        renotify_published=settings.RESULT_RENOTIFY_PUBLISHED,
        lock_ttl_seconds=settings.PUBLISH_LOCK_TTL_SECONDS,
    )


# Type aliases for dependency injection
Publisher = Annotated[ResultPublisher, Depends(get_publisher)]
EmailSender = Annotated[EmailChannel, Depends(get_email_channel)]
SmsSender = Annotated[SmsChannel, Depends(get_sms_channel)]
Renderer = Annotated[TemplateRenderer, Depends(get_renderer)]
