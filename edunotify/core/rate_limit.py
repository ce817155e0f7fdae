"""Per-client request budgets for the SMS side-service."""

import logging
from collections.abc import Callable

from fastapi import Request
from limits import RateLimitItem, parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from edunotify.core.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class RequestRateLimiter:
    """
    Named limits (e.g. ``"10 per minute"``) checked per client address.

    State lives in the configured `limits` storage; ``memory://`` keeps it
    in-process, a redis URI shares it between workers.
    """

    def __init__(self, rules: dict[str, str], storage_uri: str = "memory://"):
        self.storage = storage_from_string(storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.rules: dict[str, RateLimitItem] = {scope: parse(rule) for scope, rule in rules.items()}

    def hit(self, scope: str, client: str) -> bool:
        """Consume one request from the client's budget. False when exhausted."""
        return self.strategy.hit(self.rules[scope], scope, client)

    def reset(self) -> None:
        self.storage.reset()


def rate_limit(scope: str, message: str) -> Callable[[Request], None]:
    """Dependency enforcing the app's `scope` limit for the calling client."""

    def dependency(request: Request) -> None:
        limiter: RequestRateLimiter = request.app.state.rate_limiter
        client = request.client.host if request.client else "unknown"
        if not limiter.hit(scope, client):
            logger.warning(f"Rate limit '{scope}' exceeded for {client} on {request.url.path}")
            raise RateLimitExceededError(message)

    return dependency
