"""Unit tests for Settings validation."""

from pydantic import ValidationError
import pytest

from lessonflow.core.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.upcoming_lesson_limit == 5
    assert settings.course_session_preview_limit == 3
    assert settings.recent_lesson_limit == 3
    assert settings.default_timezone == "UTC"
    assert settings.is_production is False


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("LESSONFLOW_RECENT_LESSON_LIMIT", "5")
    monkeypatch.setenv("LESSONFLOW_ENVIRONMENT", "Production")

    settings = Settings(_env_file=None)

    assert settings.recent_lesson_limit == 5
    assert settings.is_production is True


@pytest.mark.parametrize("limit", [2, 6])
def test_recent_limit_bounds(limit):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, recent_lesson_limit=limit)


def test_rejects_unknown_timezone():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, default_timezone="Mars/Olympus")


def test_poll_interval_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, realtime_poll_interval_seconds=0)
