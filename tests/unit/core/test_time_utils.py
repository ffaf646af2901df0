from datetime import date, datetime, time, timedelta, timezone

import pytz

from lessonflow.core.time_utils import combine_utc, ensure_utc, local_date, utc_now
from lessonflow.core.ulid_helper import generate_ulid


def test_utc_now_is_aware():
    assert utc_now().tzinfo is not None
    assert utc_now().utcoffset() == timedelta(0)


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2026, 3, 10, 12, 0)

    assert ensure_utc(naive) == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_ensure_utc_converts_aware_values():
    berlin = pytz.timezone("Europe/Berlin").localize(datetime(2026, 3, 10, 13, 0))

    assert ensure_utc(berlin) == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_combine_utc():
    assert combine_utc(date(2026, 3, 10), time(9, 30)) == datetime(
        2026, 3, 10, 9, 30, tzinfo=timezone.utc
    )


def test_local_date_crosses_midnight():
    instant = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)

    assert local_date(instant, None) == date(2026, 3, 10)
    assert local_date(instant, "Asia/Tokyo") == date(2026, 3, 11)
    assert local_date(instant, "America/Los_Angeles") == date(2026, 3, 10)


def test_generate_ulid_is_sortable_text():
    first = generate_ulid()

    assert len(first) == 26
    assert first != generate_ulid()
