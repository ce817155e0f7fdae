"""Retry policies shared by the delivery channels."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def linear_retrying(
    max_attempts: int,
    base_seconds: float,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
) -> AsyncRetrying:
    """Wait base * attempt after each failed attempt (1s, 2s, ...)."""
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=base_seconds, increment=base_seconds),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
    )


def exponential_retrying(
    max_attempts: int,
    base_seconds: float,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
) -> AsyncRetrying:
    """Wait base * 2**attempt after each failed attempt (2s, 4s, ...)."""
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_seconds * 2),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
    )
