"""
stats.py - Dashboard / statistics aggregation

Computes everything the dashboard and the statistics page show from a
user's recent entries:
- monthly entry counts (last 3 or 6 calendar months)
- the current writing streak and the days that belong to any streak
- the last 7 days (dominant mood + average score per day)
- the current ISO week, split into tidied and raw entries
- one calendar cell per day that has entries

Two notions of "day" are used:
- context day:  day_date, else created_at (what the entry is about)
- activity day: created_at (when it was written); streaks use this one

`compute_dashboard_stats()` is pure; `compute_stats_for_user()` reads the
entries through the store; `/dashboard/stats` exposes it.
"""

import logging
import math
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, Query

from .auth import get_current_user
from .dates import ensure_utc, last_n_months, start_of_iso_week, to_date, utcnow
from .reconcile import is_fully_tidied
from .storage import get_store

_logger = logging.getLogger(__name__)
router = APIRouter()

WINDOW_DAYS = 90
DASHBOARD_MONTHS = 3
STATISTICS_MONTHS = 6


# -------------------------
# Small aggregation helpers
# -------------------------
def round_half_up(value: float, digits: int = 1) -> float:
    """Round like the charts do: halves go up (2.25 -> 2.3)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def mean_score(scores: Iterable[Any]) -> Optional[float]:
    """Mean of the numeric scores, rounded to 1 decimal; None when empty."""
    values = [
        float(s) for s in scores
        if isinstance(s, (int, float)) and not isinstance(s, bool) and math.isfinite(s)
    ]
    if not values:
        return None
    return round_half_up(float(np.mean(values)))


def most_frequent(labels: Iterable[Optional[str]]) -> Optional[str]:
    """Most common non-empty label; ties go to the label seen first."""
    counts = Counter(label for label in labels if label)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def compute_streaks(activity_days: Iterable[date], today: date):
    """
    Split distinct activity days into runs of consecutive days.

    Returns (current_streak, streak_days): the length of the run ending
    today (0 if none) and every day belonging to any run.
    """
    days = sorted(set(activity_days))
    current = 0
    streak_days = set()
    run: List[date] = []
    for day in days:
        if run and day - run[-1] != timedelta(days=1):
            streak_days.update(run)
            run = []
        run.append(day)
    if run:
        streak_days.update(run)
    if run and run[-1] == today:
        current = len(run)
    return current, streak_days


def _entry_view(entry: Mapping[str, Any], context: date) -> Dict[str, Any]:
    return {
        "id": entry.get("id"),
        "title_raw": entry.get("title_raw"),
        "title_tidied": entry.get("title_tidied"),
        "content_raw": entry.get("content_raw"),
        "content_tidied": entry.get("content_tidied"),
        "mood_label": entry.get("mood_label"),
        "mood_score": entry.get("mood_score"),
        "category": entry.get("category"),
        "day_date": context.isoformat(),
        "tidied_at": entry.get("tidied_at"),
        "created_at": entry.get("created_at"),
    }


def _sort_ts(value) -> float:
    return value.timestamp() if isinstance(value, datetime) else 0.0


# -------------------------
# Main aggregation
# -------------------------
def compute_dashboard_stats(
    entries: Iterable[Mapping[str, Any]],
    as_of: Optional[datetime] = None,
    months: int = DASHBOARD_MONTHS,
) -> Dict[str, Any]:
    """
    Aggregate a user's entries for the dashboard.

    `entries` may hold any number of entries; only those whose day_date or
    created_at falls in the trailing 90 days are counted. All day math is in
    UTC.
    """
    now = as_of or utcnow()
    today = to_date(now)
    window_start = now - timedelta(days=WINDOW_DAYS)

    rows = []
    for entry in entries:
        created = entry.get("created_at")
        if created is None:
            continue
        created = ensure_utc(created)
        day_date = entry.get("day_date")
        if day_date is not None:
            day_date = ensure_utc(day_date)
        in_window = created >= window_start or (day_date is not None and day_date >= window_start)
        if not in_window:
            continue
        rows.append((entry, to_date(day_date or created), to_date(created)))

    # newest first, so mood ties resolve to the most recent entry
    rows.sort(key=lambda row: _sort_ts(row[0].get("created_at")), reverse=True)

    by_day: Dict[date, List[Mapping[str, Any]]] = defaultdict(list)
    for entry, context, _ in rows:
        by_day[context].append(entry)

    # monthly counts by context day
    month_keys = last_n_months(today, months)
    month_counts = Counter(context.strftime("%Y-%m") for _, context, _ in rows)
    monthly = [{"month": m, "count": month_counts.get(m, 0)} for m in month_keys]

    # streaks by activity day
    current_streak, streak_days = compute_streaks((activity for _, _, activity in rows), today)
    streak_display_days = {
        context for _, context, activity in rows if activity == context and activity in streak_days
    }

    # last 7 days by context day
    last_week_summary = {}
    for offset in range(7):
        day = today - timedelta(days=offset)
        day_entries = by_day.get(day, [])
        last_week_summary[day.isoformat()] = {
            "day": day.isoformat(),
            "most_frequent_mood": most_frequent(e.get("mood_label") for e in day_entries),
            "avg_mood_score": mean_score(e.get("mood_score") for e in day_entries),
            "entries": len(day_entries),
        }
    last_7_days = [
        {"date": key, "avg_mood_score": value["avg_mood_score"], "entries": value["entries"]}
        for key, value in reversed(list(last_week_summary.items()))
    ]

    # current ISO week by context day
    week_start = start_of_iso_week(today)
    week_end = week_start + timedelta(days=6)
    week_rows = [(e, context) for e, context, _ in rows if week_start <= context <= week_end]
    tidied = [(e, c) for e, c in week_rows if is_fully_tidied(e)]
    raw = [(e, c) for e, c in week_rows if not is_fully_tidied(e)]
    tidied.sort(key=lambda row: (_sort_ts(row[0].get("tidied_at")), _sort_ts(row[0].get("created_at"))), reverse=True)

    week_moods = [e.get("mood_label") for e, _ in week_rows]
    weekly_insight_stub = {
        "start_week": week_start.isoformat(),
        "end_week": week_end.isoformat(),
        "total_entries": len(week_rows),
        "most_frequent_mood": most_frequent(week_moods),
        "avg_mood_score": mean_score(e.get("mood_score") for e, _ in week_rows),
        "mood_distribution": dict(Counter(m for m in week_moods if m)),
    }

    calendar_days = []
    for day in sorted(by_day):
        day_entries = by_day[day]
        calendar_days.append({
            "date": day.isoformat(),
            "entries_count": len(day_entries),
            "mood_label": most_frequent(e.get("mood_label") for e in day_entries),
            "avg_mood_score": mean_score(e.get("mood_score") for e in day_entries),
            "in_streak": day in streak_display_days,
        })

    return {
        "monthly": monthly,
        "streak": current_streak,
        "streak_days": sorted(d.isoformat() for d in streak_days),
        "last_week_mood_summary": last_week_summary,
        "last_7_days": last_7_days,
        "weekly_insight_stub": weekly_insight_stub,
        "current_week": {
            "tidied_entries": [_entry_view(e, c) for e, c in tidied],
            "raw_entries": [_entry_view(e, c) for e, c in raw],
        },
        "calendar_days": calendar_days,
        "all_entries": [
            dict(_entry_view(e, c), tidied=bool(e.get("tidied_at") or e.get("content_tidied") or e.get("title_tidied")))
            for e, c, _ in rows
        ],
    }


def compute_stats_for_user(store, user_id: str, as_of: Optional[datetime] = None, months: int = DASHBOARD_MONTHS):
    """Read `user_id`'s entries and aggregate them."""
    entries = store.list_entries(user_id)
    _logger.debug("Aggregating %d entries for user %s", len(entries), user_id)
    return compute_dashboard_stats(entries, as_of=as_of, months=months)


# -------------------------
# API endpoint
# -------------------------
@router.get("/dashboard/stats")
def dashboard_stats(
    months: int = Query(DASHBOARD_MONTHS),
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    """Dashboard aggregation; `months=6` is used by the statistics page."""
    if months not in (DASHBOARD_MONTHS, STATISTICS_MONTHS):
        raise HTTPException(status_code=400, detail="months must be 3 or 6")
    try:
        return compute_stats_for_user(store, user["id"], months=months)
    except Exception as e:
        _logger.exception("Failed to compute dashboard stats for user %s: %s", user["id"], e)
        raise HTTPException(status_code=500, detail="Failed to compute stats.")
