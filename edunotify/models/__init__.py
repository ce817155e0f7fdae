"""Database models package."""

from edunotify.models.course import Course
from edunotify.models.notification import NotificationRecord, NotificationStatus, NotificationType
from edunotify.models.publish_lock import PublishLock
from edunotify.models.result import Result, ResultStatus
from edunotify.models.student import Student

__all__ = [
    # Admin data
    "Student",
    "Course",
    # Results
    "Result",
    "ResultStatus",
    # Notifications
    "NotificationRecord",
    "NotificationStatus",
    "NotificationType",
    # Publishing
    "PublishLock",
]
