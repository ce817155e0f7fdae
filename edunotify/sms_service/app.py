"""SMS side-service: a small FastAPI app fronting the SMS gateway."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, FastAPI, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from edunotify.core.config import Settings, get_settings, settings
from edunotify.core.database import engine, get_db
from edunotify.core.exceptions import BadRequestError, SmsGatewayError, StoreError
from edunotify.core.rate_limit import RequestRateLimiter, rate_limit
from edunotify.core.handlers import configure_logging, register_exception_handlers
from edunotify.middleware.logging import RequestLoggingMiddleware
from edunotify.schemas.sms import (
    SmsHealthResponse,
    SmsNotifyRequest,
    SmsNotifyResponse,
    SmsTestRequest,
    SmsTestResponse,
)
from edunotify.services.contact import normalize_phone
from edunotify.services.sms_gateway import SmsGatewayAdapter
from edunotify.services.templates import TemplateRenderer
from edunotify.sms_service.service import SmsNotifier

logger = logging.getLogger(__name__)

SERVICE_NAME = "EduNotify SMS Service"


# ==========================================
# Dependencies
# ==========================================

async def get_http_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


def get_gateway(
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> SmsGatewayAdapter:
    return SmsGatewayAdapter.from_settings(settings, client)


def get_notifier(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    gateway: Annotated[SmsGatewayAdapter, Depends(get_gateway)],
) -> SmsNotifier:
    return SmsNotifier(
        db,
        gateway=gateway,
        renderer=TemplateRenderer(settings.INSTITUTION_NAME),
        max_batch_size=settings.SMS_MAX_BATCH_SIZE,
        send_delay_seconds=settings.SMS_SEND_DELAY_SECONDS,
    )


Notifier = Annotated[SmsNotifier, Depends(get_notifier)]
Gateway = Annotated[SmsGatewayAdapter, Depends(get_gateway)]


# ==========================================
# Routes
# ==========================================

API_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."
SMS_LIMIT_MESSAGE = "SMS rate limit exceeded, please try again later."

router = APIRouter(
    prefix="/api",
    dependencies=[Depends(rate_limit("api", API_LIMIT_MESSAGE))],
)
sms_limited = [Depends(rate_limit("sms", SMS_LIMIT_MESSAGE))]


def _store_failure(exc: StoreError) -> JSONResponse:
    logger.error(f"SMS batch aborted: {exc}")
    body = SmsNotifyResponse(success=False, message=str(exc), errors=[str(exc)])
    return JSONResponse(status_code=500, content=body.model_dump(by_alias=True, mode="json"))


@router.post(
    "/notify-results",
    response_model=SmsNotifyResponse,
    response_model_by_alias=True,
    dependencies=sms_limited,
)
async def notify_results(request: SmsNotifyRequest, notifier: Notifier):
    """SMS every listed student a summary of their latest published results."""
    try:
        return await notifier.notify(request, include_results=True)
    except StoreError as exc:
        return _store_failure(exc)


@router.post(
    "/notify-custom",
    response_model=SmsNotifyResponse,
    response_model_by_alias=True,
    dependencies=sms_limited,
)
async def notify_custom(request: SmsNotifyRequest, notifier: Notifier):
    """SMS every listed student an admin-written message."""
    try:
        return await notifier.notify(request, include_results=False, limit_batch=True)
    except StoreError as exc:
        return _store_failure(exc)


@router.post("/test-sms", response_model=SmsTestResponse, response_model_by_alias=True)
async def send_test_sms(request: SmsTestRequest, gateway: Gateway):
    """Send one SMS to check gateway credentials."""
    phone = normalize_phone(request.phone_number, e164=True)
    if not phone:
        raise BadRequestError("Invalid phone number format")

    try:
        receipt = await gateway.send(phone, request.message)
    except SmsGatewayError as exc:
        body = SmsTestResponse(success=False, error=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))
    return SmsTestResponse(success=True, sid=receipt.sid)


@router.get("/health", response_model=SmsHealthResponse)
def health(
    notifier: Notifier,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """200 when the gateway is configured and the store answers, else 503."""
    checks = {
        "twilio": notifier.gateway.configured,
        "supabase": notifier.store_available(),
        "twilioPhone": notifier.gateway.has_sender,
    }
    healthy = all(checks.values())
    body = SmsHealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        service=SERVICE_NAME,
        version=settings.APP_VERSION,
        environment="development" if settings.DEBUG else "production",
        checks=checks,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump(by_alias=True, mode="json"))


@router.post("/sms-status")
def sms_status(
    message_sid: Annotated[str, Form(alias="MessageSid")],
    message_status: Annotated[str, Form(alias="MessageStatus")],
    error_code: Annotated[str | None, Form(alias="ErrorCode")] = None,
):
    """Delivery status callback from the gateway."""
    if error_code:
        logger.warning(f"SMS {message_sid} status {message_status} (error {error_code})")
    else:
        logger.info(f"SMS {message_sid} status {message_status}")
    return {"received": True}


# ==========================================
# Application
# ==========================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {SERVICE_NAME} on port {settings.SMS_SERVICE_PORT}")
    if not settings.twilio_configured:
        logger.warning("SMS gateway credentials missing; only test mode sends will work")
    yield
    engine.dispose()


def create_sms_application(
    api_rate_limit: str | None = None,
    send_rate_limit: str | None = None,
) -> FastAPI:
    """Create the SMS side-service app."""
    app = FastAPI(
        title=SERVICE_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs",
        lifespan=lifespan,
    )
    app.state.rate_limiter = RequestRateLimiter(
        {
            "api": api_rate_limit or settings.SMS_API_RATE_LIMIT,
            "sms": send_rate_limit or settings.SMS_SEND_RATE_LIMIT,
        },
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, validation_status=400)
    app.include_router(router)
    return app


app = create_sms_application()


def run() -> None:
    """Console entry point."""
    import uvicorn

    configure_logging(settings.DEBUG)
    uvicorn.run(
        "edunotify.sms_service.app:app",
        host="0.0.0.0",
        port=settings.SMS_SERVICE_PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
