from datetime import date, datetime, time, timezone, timedelta

import pytest

from app.core.timezone_utils import (
    convert_utc_to_local,
    ensure_utc,
    local_date_time_to_utc,
    normalize_to_utc,
    today_in_gym_timezone,
)


def test_normalize_to_utc_naive_local():
    tz = 'America/New_York'
    # July 1, 2025 at 10:00 local (EDT is UTC-4)
    local_naive = datetime(2025, 7, 1, 10, 0, 0)
    utc_dt = normalize_to_utc(local_naive, tz)
    assert utc_dt.tzinfo is not None
    assert utc_dt.tzinfo == timezone.utc
    assert utc_dt.hour == 14 and utc_dt.minute == 0


def test_normalize_to_utc_aware_input():
    tz = 'America/New_York'
    # Aware +02:00 should convert to 08:00Z
    aware_dt = datetime(2025, 7, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    utc_dt = normalize_to_utc(aware_dt, tz)
    assert utc_dt.tzinfo == timezone.utc
    assert utc_dt.hour == 8 and utc_dt.minute == 0


def test_normalize_to_utc_none():
    assert normalize_to_utc(None, 'UTC') is None


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2030, 1, 7, 12, 0)
    assert ensure_utc(naive) == datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(None) is None


def test_local_date_time_to_utc_follows_dst():
    tz = 'Europe/Madrid'
    winter = local_date_time_to_utc(date(2030, 1, 14), time(7, 0), tz)
    summer = local_date_time_to_utc(date(2030, 7, 15), time(7, 0), tz)
    assert winter == datetime(2030, 1, 14, 6, 0, tzinfo=timezone.utc)
    assert summer == datetime(2030, 7, 15, 5, 0, tzinfo=timezone.utc)


def test_convert_utc_to_local_round_trip():
    tz = 'America/New_York'
    utc_dt = datetime(2025, 7, 1, 14, 0, tzinfo=timezone.utc)
    local_dt = convert_utc_to_local(utc_dt, tz)
    assert local_dt.hour == 10
    assert normalize_to_utc(local_dt, tz) == utc_dt


@pytest.mark.parametrize("now, expected", [
    (datetime(2030, 1, 8, 3, 0, tzinfo=timezone.utc), date(2030, 1, 7)),
    (datetime(2030, 1, 8, 6, 0, tzinfo=timezone.utc), date(2030, 1, 8)),
])
def test_today_in_gym_timezone(now, expected):
    # Nueva York va 5 horas por detrás de UTC en enero
    assert today_in_gym_timezone('America/New_York', now) == expected
