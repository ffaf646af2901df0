"""lessonflow: lesson lifecycle and session-availability engine."""

__version__ = "1.0.0"
