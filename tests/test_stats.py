from datetime import datetime, timedelta

import pytz

from cleannote.stats import compute_dashboard_stats, compute_streaks, mean_score, most_frequent, round_half_up

NOW = pytz.utc.localize(datetime(2025, 3, 5, 12, 0))  # Wednesday


def entry(created, day_date=None, mood=None, score=None, **extra):
    data = {
        "id": extra.pop("id", f"e-{created.isoformat()}-{mood}"),
        "content_raw": "text",
        "created_at": created,
        "day_date": day_date,
        "mood_label": mood,
        "mood_score": score,
        "tidied_at": None,
    }
    data.update(extra)
    return data


def days_ago(n, hour=9):
    return NOW.replace(hour=hour) - timedelta(days=n)


def test_round_half_up():
    assert round_half_up(2.25) == 2.3
    assert round_half_up(2.24) == 2.2
    assert round_half_up(7.0) == 7.0


def test_mean_and_most_frequent():
    assert mean_score([5, 6, None, "x"]) == 5.5
    assert mean_score([]) is None
    assert most_frequent(["sad", "calm", "calm", None]) == "calm"
    assert most_frequent(["calm", "sad"]) == "calm"
    assert most_frequent([None]) is None


def test_streak_of_three_consecutive_days():
    today = NOW.date()
    current, days = compute_streaks([today - timedelta(days=2), today - timedelta(days=1), today], today)
    assert current == 3
    assert len(days) == 3


def test_streak_broken_by_gap():
    today = NOW.date()
    d3 = today - timedelta(days=3)
    current, days = compute_streaks([d3, today - timedelta(days=1), today], today)
    assert current == 2
    assert d3 in days


def test_streak_zero_without_entry_today():
    today = NOW.date()
    current, _ = compute_streaks([today - timedelta(days=1)], today)
    assert current == 0


def test_dashboard_aggregation():
    entries = [
        entry(days_ago(0), mood="happy", score=7),
        entry(days_ago(0, hour=8), mood="calm", score=8),
        entry(days_ago(1), mood="sad", score=3),
        entry(days_ago(2), mood="sad", score=4),
        # backfilled: written today about last month
        entry(days_ago(0, hour=7), day_date=pytz.utc.localize(datetime(2025, 2, 10)), mood="tired", score=2),
        # outside the 90 day window
        entry(days_ago(200), mood="angry", score=1),
    ]
    stats = compute_dashboard_stats(entries, as_of=NOW)

    assert stats["streak"] == 3
    assert stats["monthly"] == [
        {"month": "2025-03", "count": 4},
        {"month": "2025-02", "count": 1},
        {"month": "2025-01", "count": 0},
    ]

    today = stats["last_week_mood_summary"]["2025-03-05"]
    assert today["entries"] == 2
    assert today["most_frequent_mood"] == "happy"
    assert today["avg_mood_score"] == 7.5
    assert stats["last_week_mood_summary"]["2025-02-28"]["most_frequent_mood"] is None
    assert [d["date"] for d in stats["last_7_days"]][0] == "2025-02-27"
    assert [d["date"] for d in stats["last_7_days"]][-1] == "2025-03-05"

    calendar = {c["date"]: c for c in stats["calendar_days"]}
    assert calendar["2025-03-05"]["in_streak"] is True
    assert calendar["2025-02-10"]["in_streak"] is False
    assert calendar["2025-02-10"]["mood_label"] == "tired"
    assert list(calendar) == sorted(calendar)

    stub = stats["weekly_insight_stub"]
    assert stub["start_week"] == "2025-03-03"
    assert stub["end_week"] == "2025-03-09"
    assert stub["total_entries"] == 4
    assert stub["most_frequent_mood"] == "sad"
    assert stub["mood_distribution"] == {"happy": 1, "calm": 1, "sad": 2}


def test_six_month_series():
    stats = compute_dashboard_stats([], as_of=NOW, months=6)
    assert [m["month"] for m in stats["monthly"]] == [
        "2025-03", "2025-02", "2025-01", "2024-12", "2024-11", "2024-10",
    ]
    assert stats["streak"] == 0


def test_current_week_split_and_order():
    tidied_old = entry(
        days_ago(1), id="old", mood="calm", score=6, category="work",
        title_tidied="Old", content_tidied="Old.", tidied_at=days_ago(1, hour=10),
    )
    tidied_new = entry(
        days_ago(2), id="new", mood="calm", score=6, category="work",
        title_tidied="New", content_tidied="New.", tidied_at=days_ago(0, hour=10),
    )
    raw = entry(days_ago(0), id="raw", mood="happy")
    stats = compute_dashboard_stats([tidied_old, tidied_new, raw], as_of=NOW)
    week = stats["current_week"]
    assert [e["id"] for e in week["tidied_entries"]] == ["new", "old"]
    assert [e["id"] for e in week["raw_entries"]] == ["raw"]
