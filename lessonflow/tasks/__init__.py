# lessonflow/tasks/__init__.py
"""
Celery tasks package for the lesson engine.

Periodic maintenance only; lesson transitions always run in the request path.
"""
