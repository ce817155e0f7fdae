"""Channel contract shared by email and SMS."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Recipient:
    """Where a message goes. `address` is an email address or a phone number."""

    address: str
    name: str = ""
    student_id: str = ""


@dataclass(frozen=True)
class ChannelOutcome:
    """Upstream acceptance of a single send. Not a delivery guarantee."""

    success: bool
    error: str | None = None
    reference: str | None = None

    @classmethod
    def ok(cls, reference: str | None = None) -> "ChannelOutcome":
        return cls(success=True, reference=reference)

    @classmethod
    def failed(cls, error: str) -> "ChannelOutcome":
        return cls(success=False, error=error)


class ChannelSender(ABC):
    """A notification transport."""

    name: str = "channel"

    @abstractmethod
    async def send(self, recipient: Recipient, subject: str, body: str) -> ChannelOutcome:
        """Hand one message to the upstream gateway."""
