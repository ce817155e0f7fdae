"""Delivery channels used by the notification pipeline."""

from edunotify.services.channels.base import ChannelOutcome, ChannelSender, Recipient
from edunotify.services.channels.email import EmailChannel
from edunotify.services.channels.sms import SmsChannel

__all__ = [
    "ChannelOutcome",
    "ChannelSender",
    "Recipient",
    "EmailChannel",
    "SmsChannel",
]
