# lessonflow/core/constants.py
"""
Business constants for the lesson lifecycle engine.

These thresholds are deliberately not environment-tunable: the student view,
the teacher view and the server-side policy must all read the same numbers.
"""

BRAND_NAME = "lessonflow"

# Join window lead times (minutes before scheduled start)
LESSON_JOIN_LEAD_MINUTES = 360  # 1:1 lessons open 6h early
COURSE_JOIN_LEAD_MINUTES = 10  # group sessions are additionally gated by live_status

# Cancellation / reschedule thresholds (kept different on purpose)
CANCEL_MIN_HOURS = 2  # inclusive
RESCHEDULE_MIN_MINUTES = 30  # exclusive

# Recording retention
RECORDING_RETENTION_DAYS = 7
RECORDING_PROCESSING_HOURS = 24

# Flat-rate refund per successful cancellation, independent of duration
CANCELLATION_REFUND_UNITS = 1

# Realtime tables the reconciliation loop listens to
LESSONS_TABLE = "lessons"
COURSE_SESSIONS_TABLE = "course_sessions"
WATCHED_TABLES = frozenset({LESSONS_TABLE, COURSE_SESSIONS_TABLE})
