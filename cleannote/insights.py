"""
insights.py - Weekly insight generation, retrieval and saving

This module turns one ISO week of journal entries into a first-person
weekly reflection using Gemini, and stores at most one insight per user per
week (document id = week_start, so regenerating overwrites in place).

Pipeline for generate_weekly_insight():
1. Resolve the ISO week (Monday-Sunday) around the requested date.
2. Read the week's entries by week_index and compute mood statistics.
3. Build a text bundle of the entries and prompt the model.
4. Normalize the answer (JSON strategies, heuristic prose fallback,
   sanitizing, mood summary backed by the computed stats).
5. Upsert the insight. Nothing is written if the model call fails.

The stored `content` field is a JSON string with exactly:
    summary, shortSummary, recommendations[], highlights[],
    moodSummary { avgScore, mostMood, distribution }

Endpoints:
- POST /insights/generate?week_start=YYYY-MM-DD
- GET  /insights?week_start=YYYY-MM-DD
- POST /insights/save
"""

import json
import logging
import math
import re
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
from fastapi import APIRouter, Body, Depends, HTTPException, Query

from .auth import get_current_user
from .dates import parse_day_date, to_iso_date, utcnow, week_bounds, week_index
from .gcp_clients import ConfigurationError, GenerationError, generate_text
from .llm_parsing import extract_json, heuristic_extract, strip_tags
from .reconcile import context_day
from .stats import most_frequent, round_half_up
from .storage import get_store

_logger = logging.getLogger(__name__)
router = APIRouter()

INSIGHT_KEYS = ("summary", "shortSummary", "recommendations", "highlights", "moodSummary")

_BARE_THINK_RE = re.compile(r"^<*think>*$", re.IGNORECASE)
_OK_RE = re.compile(r"^ok(ay)?\b", re.IGNORECASE)
_SCAFFOLD_RE = re.compile(r"^<.*>$")


# -------------------------
# Statistics and prompt
# -------------------------
def _numeric(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def compute_week_mood_stats(entries: List[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Mood statistics for one week of entries.

    Returns mood_counts, most_mood, avg_score (1 decimal), day_scores
    (context day -> average score or None) and total_entries.
    """
    mood_counts: Counter = Counter()
    day_values: Dict[str, List[float]] = defaultdict(list)
    scores: List[float] = []

    for entry in entries:
        if entry.get("mood_label"):
            mood_counts[entry["mood_label"]] += 1
        day_key = context_day(entry).isoformat()
        day_list = day_values[day_key]
        score = _numeric(entry.get("mood_score"))
        if score is not None:
            day_list.append(score)
            scores.append(score)

    day_scores = {
        day: (round_half_up(float(np.mean(values))) if values else None)
        for day, values in sorted(day_values.items())
    }
    return {
        "mood_counts": dict(mood_counts),
        "most_mood": most_frequent(entry.get("mood_label") for entry in entries),
        "avg_score": round_half_up(float(np.mean(scores))) if scores else None,
        "day_scores": day_scores,
        "total_entries": len(entries),
    }


def build_text_bundle(entries: List[Mapping[str, Any]]) -> str:
    """One block per entry: date, title, mood, then the text."""
    blocks = []
    for entry in entries:
        title = entry.get("title_tidied") or entry.get("title_raw") or "(untitled)"
        mood = entry.get("mood_label") or "unknown"
        content = entry.get("content_tidied") or entry.get("content_raw") or "(no content)"
        blocks.append(f"{context_day(entry).isoformat()} | {title} | mood: {mood}\n{content}")
    return "\n\n".join(blocks)


def build_insight_prompt(bundle: str) -> str:
    return (
        "Strict Rules:\n"
        "- Answer in the same language the user writes in.\n"
        "- Use FIRST-PERSON voice for 'summary' and 'shortSummary'.\n"
        '- DO NOT include the key "unknown" in distribution.\n'
        "- Keep the text natural, with no inner thoughts or system commentary.\n"
        "- If data is sparse, stay within the given entries and do not invent dates.\n"
        "- Return ONLY a valid JSON object with keys:\n"
        "  summary, shortSummary, recommendations (array), highlights (array), "
        "moodSummary { avgScore, mostMood, distribution }\n\n"
        f"Data:\n{bundle}"
    )


# -------------------------
# Normalization
# -------------------------
def sanitize_string_candidate(value: Any) -> Optional[str]:
    """Strip tags from a narrative string; drop model scaffolding tokens."""
    if not isinstance(value, str):
        return None
    trimmed = strip_tags(value)
    if not trimmed:
        return None
    if _BARE_THINK_RE.match(trimmed):
        return None
    if _OK_RE.match(trimmed) and len(trimmed) < 10:
        return None
    if _SCAFFOLD_RE.match(trimmed) and len(trimmed) < 10:
        return None
    return trimmed


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if item is None:
            continue
        text = strip_tags(str(item))
        if text:
            items.append(text)
    return items


def clean_distribution(source: Any) -> Dict[str, float]:
    """Keep positive finite counts; never the "unknown" key."""
    if not isinstance(source, Mapping):
        return {}
    distribution = {}
    for key, value in source.items():
        if str(key).lower() == "unknown":
            continue
        try:
            count = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(count) and count > 0:
            distribution[str(key)] = int(count) if count.is_integer() else count
    return distribution


def mood_summary_from_stats(stats: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "avgScore": stats.get("avg_score"),
        "mostMood": stats.get("most_mood"),
        "distribution": clean_distribution(stats.get("mood_counts")),
    }


def normalize_insight(raw_text: Optional[str], stats: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Turn the model's answer into the stored insight shape.

    Never raises: unparseable answers go through the heuristic prose reader
    and missing figures come from `stats`.
    """
    strategy, parsed = extract_json(raw_text)
    if parsed is None:
        _logger.warning("Insight response had no parseable JSON; using heuristic extraction")
        parsed = heuristic_extract(raw_text)
    else:
        _logger.debug("Insight response parsed with %s", strategy)

    summary = sanitize_string_candidate(parsed.get("summary"))
    short_summary = sanitize_string_candidate(parsed.get("shortSummary"))
    highlights = [h for h in _string_list(parsed.get("highlights")) if h.lower() != "summary"]
    recommendations = _string_list(parsed.get("recommendations"))

    fallback = mood_summary_from_stats(stats)
    model_summary = parsed.get("moodSummary")
    if isinstance(model_summary, Mapping):
        avg = _numeric(model_summary.get("avgScore"))
        most = model_summary.get("mostMood") if isinstance(model_summary.get("mostMood"), str) else None
        distribution = clean_distribution(model_summary.get("distribution") or model_summary.get("moodCounts"))
        mood_summary = {
            "avgScore": avg if avg is not None else fallback["avgScore"],
            "mostMood": most or fallback["mostMood"],
            "distribution": distribution or fallback["distribution"],
        }
    else:
        mood_summary = fallback
    if mood_summary["avgScore"] is not None:
        mood_summary["avgScore"] = round_half_up(mood_summary["avgScore"])

    if not short_summary and summary:
        sentences = [part.strip() for part in " ".join(summary.split()).split(".") if part.strip()]
        short_summary = sentences[0] if sentences else None
    if not short_summary and mood_summary["mostMood"]:
        short_summary = f"I felt {mood_summary['mostMood']} this week."

    return {
        "summary": summary,
        "shortSummary": short_summary,
        "recommendations": recommendations,
        "highlights": highlights,
        "moodSummary": mood_summary,
    }


# -------------------------
# Core operations
# -------------------------
def _week_entries(store, user_id: str, any_date) -> List[Dict[str, Any]]:
    entries = store.list_week_entries(user_id, week_index(any_date))
    entries.sort(key=lambda e: (context_day(e), e["created_at"]))
    return entries


def _insight_row(user_id: str, week_start: str, week_end: str, insight: Mapping[str, Any], now: datetime):
    return {
        "user_id": user_id,
        "week_start": week_start,
        "week_end": week_end,
        "content": json.dumps(insight, ensure_ascii=False),
        "short_summary": insight.get("shortSummary"),
        "generated_at": now,
    }


async def generate_weekly_insight(store, user_id: str, any_date, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Generate (or regenerate) the insight of the ISO week holding `any_date`.

    Raises ValueError for an empty week. ConfigurationError and
    GenerationError propagate and nothing is persisted.
    """
    start, end = week_bounds(any_date)
    entries = _week_entries(store, user_id, start)
    if not entries:
        raise ValueError("No entries in this week")

    stats = compute_week_mood_stats(entries)
    prompt = build_insight_prompt(build_text_bundle(entries))
    raw_text = await generate_text(prompt, temperature=0.7, max_output_tokens=2048)

    insight = normalize_insight(raw_text, stats)
    row = _insight_row(user_id, start.isoformat(), end.isoformat(), insight, now or utcnow())
    saved = store.upsert_insight(user_id, start.isoformat(), row)
    _logger.info("Weekly insight stored for user %s, week %s (%d entries)", user_id, start, len(entries))
    return {"insight": insight, "stats": stats, "saved_insight": saved}


def get_weekly_insight(store, user_id: str, any_date) -> Dict[str, Any]:
    """Stored insight of the week (None when not generated yet) plus fresh stats."""
    start, _ = week_bounds(any_date)
    saved = store.get_insight(user_id, start.isoformat())
    stats = compute_week_mood_stats(_week_entries(store, user_id, start))
    return {"saved_insight": saved, "stats": stats}


def save_weekly_insight(
    store,
    user_id: str,
    week_start,
    content: Any,
    short_summary: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Store a client-edited insight for a week.

    `content` may be a JSON string or an object. Raises ValueError for a
    missing content or an invalid week.
    """
    if content is None or content == "" or content == {}:
        raise ValueError("week_start and content required")
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError as e:
            raise ValueError("content must be a JSON object") from e
    if not isinstance(content, Mapping):
        raise ValueError("content must be a JSON object")

    insight = {key: content.get(key) for key in INSIGHT_KEYS}
    insight["recommendations"] = _string_list(insight["recommendations"])
    insight["highlights"] = _string_list(insight["highlights"])
    mood_summary = insight["moodSummary"] if isinstance(insight["moodSummary"], Mapping) else {}
    insight["moodSummary"] = {
        "avgScore": _numeric(mood_summary.get("avgScore")),
        "mostMood": mood_summary.get("mostMood"),
        "distribution": clean_distribution(mood_summary.get("distribution")),
    }
    if short_summary:
        insight["shortSummary"] = short_summary

    start, end = week_bounds(week_start)
    row = _insight_row(user_id, start.isoformat(), end.isoformat(), insight, now or utcnow())
    return store.upsert_insight(user_id, start.isoformat(), row)


# -------------------------
# API endpoints
# -------------------------
def _parse_week_start(week_start: Optional[str]):
    parsed = parse_day_date(week_start)
    if parsed is None:
        raise HTTPException(status_code=400, detail="week_start required (YYYY-MM-DD)")
    return parsed


@router.post("/insights/generate")
async def generate_insight_endpoint(
    week_start: Optional[str] = Query(None),
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    day = _parse_week_start(week_start)
    try:
        return await generate_weekly_insight(store, user["id"], day)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        _logger.error("Insight generation misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except GenerationError as e:
        _logger.exception("Insight generation failed for user %s: %s", user["id"], e)
        raise HTTPException(status_code=502, detail="AI service error while generating insight.")


@router.get("/insights")
def get_insight_endpoint(
    week_start: Optional[str] = Query(None),
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    day = _parse_week_start(week_start)
    result = get_weekly_insight(store, user["id"], day)
    result["week_start"] = to_iso_date(week_bounds(day)[0])
    return result


@router.post("/insights/save")
def save_insight_endpoint(
    payload: dict = Body(...),
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    day = _parse_week_start(payload.get("week_start"))
    try:
        saved = save_weekly_insight(
            store,
            user["id"],
            day,
            payload.get("content"),
            short_summary=payload.get("short_summary"),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "saved": saved}
