from datetime import date, datetime, timedelta

import pytz

from cleannote.dates import last_n_months, parse_day_date, start_of_iso_week, week_bounds, week_index


def test_week_index_uses_iso_year():
    assert week_index(date(2025, 12, 29)) == 202601
    assert week_index(date(2021, 1, 3)) == 202053
    assert week_index("2025-03-05") == 202510


def test_week_index_constant_within_week_and_changes_on_monday():
    monday = date(2025, 3, 3)
    indices = {week_index(monday + timedelta(days=i)) for i in range(7)}
    assert len(indices) == 1
    assert week_index(monday + timedelta(days=7)) != week_index(monday)


def test_week_bounds():
    assert week_bounds("2025-03-06") == (date(2025, 3, 3), date(2025, 3, 9))
    assert start_of_iso_week(date(2025, 3, 9)) == date(2025, 3, 3)


def test_parse_day_date_variants():
    expected = pytz.utc.localize(datetime(2025, 1, 1))
    assert parse_day_date("2025-01-01") == expected
    assert parse_day_date("2025-01-01T18:30:00Z") == expected
    assert parse_day_date(date(2025, 1, 1)) == expected
    assert parse_day_date("not a date") is None
    assert parse_day_date("") is None
    assert parse_day_date(None) is None


def test_parse_day_date_converts_offsets_to_utc():
    assert parse_day_date("2025-01-02T01:00:00+05:00").date() == date(2025, 1, 1)


def test_last_n_months_wraps_year():
    assert last_n_months(date(2025, 2, 10), 3) == ["2025-02", "2025-01", "2024-12"]
