"""Lease-based lock preventing overlapping publish cycles."""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from edunotify.core.exceptions import PublishInProgressError
from edunotify.models.publish_lock import PublishLock

logger = logging.getLogger(__name__)

RESULT_PUBLISH_LOCK = "result_publish"


class PublishLockService:
    """Acquire/release a named lease stored in the relational store."""

    def __init__(self, db: Session, ttl_seconds: int = 900):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)

    def acquire(self, name: str = RESULT_PUBLISH_LOCK) -> str:
        """Take the lease or raise PublishInProgressError. Returns the lease token."""
        now = datetime.now(timezone.utc)
        token = secrets.token_hex(16)

        # Take over an expired lease
        taken = self.db.execute(
            update(PublishLock)
            .where(PublishLock.name == name, PublishLock.expires_at < now)
            .values(token=token, acquired_at=now, expires_at=now + self.ttl)
            .execution_options(synchronize_session=False)
        )
        if taken.rowcount:
            self.db.commit()
            logger.info(f"Took over expired lock {name}")
            return token

        try:
            self.db.add(PublishLock(name=name, token=token, acquired_at=now, expires_at=now + self.ttl))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            held = self.db.execute(
                select(PublishLock.expires_at).where(PublishLock.name == name)
            ).scalar_one_or_none()
            raise PublishInProgressError(held.isoformat() if held else None)

        return token

    def release(self, token: str, name: str = RESULT_PUBLISH_LOCK) -> bool:
        """Drop the lease if this token still holds it."""
        released = self.db.execute(
            delete(PublishLock)
            .where(PublishLock.name == name, PublishLock.token == token)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return bool(released.rowcount)
