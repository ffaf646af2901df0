# lessonflow/tasks/celery_app.py
"""
Celery application configuration for the lesson engine.

Redis is the broker and result backend. The only scheduled job today is the
recording retention sweep (see beat_schedule).
"""

import os
from typing import Any, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from lessonflow.core.config import settings

DEFAULT_BROKER_URL = "redis://localhost:6379/0"


def _resolve_broker_url() -> str:
    # Priority: CELERY_BROKER_URL -> settings.redis_url -> local default
    broker_url = os.getenv("CELERY_BROKER_URL") or settings.redis_url or DEFAULT_BROKER_URL
    if not any(broker_url.endswith(f"/{i}") for i in range(16)):
        broker_url = f"{broker_url.rstrip('/')}/0"
    return broker_url


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = _resolve_broker_url()
    result_backend = os.getenv("CELERY_RESULT_BACKEND") or broker_url

    app = Celery("lessonflow", broker=broker_url, backend=result_backend)

    app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "worker_prefetch_multiplier": 1,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 240,
            "task_time_limit": 300,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_default_retry_delay": 60,
            "worker_hijack_root_logger": False,
        }
    )

    app.conf.imports = ("lessonflow.tasks.recording_tasks",)
    app.conf.task_routes = {"retention.*": {"queue": "maintenance"}}

    from lessonflow.tasks.beat_schedule import get_beat_schedule

    app.conf.beat_schedule = get_beat_schedule()
    return app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to match the API process instead of Celery's default."""
    import logging

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task that logs failures and retries with task context."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        import logging

        logging.getLogger(__name__).error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        import logging

        logging.getLogger(__name__).warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries} due to: {exc}",
            extra={"task_id": task_id, "task_name": self.name, "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)
