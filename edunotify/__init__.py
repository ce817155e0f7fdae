"""EduNotify: result publishing and student notifications."""

__version__ = "2.0.0"
