"""
tidy.py - AI tidy pass for journal entries

Sends the raw journal text to Gemini together with the values the model is
not allowed to change, and turns the answer into a TidyResult.

Flow:
1. build_override_map(): pinned values from the stored entry (manual flags)
   plus any per-call overrides from the client.
2. build_tidy_prompt(): JSON-only instructions embedding that map.
3. run_tidy(): calls generate_text() and hands the answer to
4. interpret_tidy_response(): parses the answer with the JSON strategy chain
   and fills each field from override -> model -> fallback.

interpret_tidy_response() is pure so it can be tested without the model.
The persisted merge of a TidyResult into a stored entry lives in
reconcile.merge_tidy().
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .dates import parse_day_date, to_iso_date
from .gcp_clients import generate_text
from .llm_parsing import extract_json
from .reconcile import first_present, first_words
from .validators import (
    ALLOWED_CATEGORIES,
    ALLOWED_MOODS,
    clamp_mood_score,
    normalize_category,
    normalize_mood,
)

_logger = logging.getLogger(__name__)

OVERRIDE_KEYS = ("title", "moodLabel", "moodScore", "category", "date")

# client request field -> override map key
CLIENT_OVERRIDE_KEYS = {
    "title": "title",
    "mood_label": "moodLabel",
    "mood_score": "moodScore",
    "category": "category",
    "date": "date",
}


@dataclass
class TidyResult:
    title: Optional[str]
    content_tidied: str
    mood_label: Optional[str] = None
    mood_score: Optional[float] = None
    category: Optional[str] = None
    date_candidate: Optional[datetime] = None
    raw_response: str = ""
    parsed: Dict[str, Any] = field(default_factory=dict)
    strategy: Optional[str] = None

    def to_preview(self) -> Dict[str, Any]:
        """JSON shape returned by the preview endpoints."""
        return {
            "title": self.title,
            "content_tidied": self.content_tidied,
            "mood_label": self.mood_label,
            "mood_score": self.mood_score,
            "category": self.category,
            "day_date": to_iso_date(self.date_candidate) if self.date_candidate else None,
        }


def build_override_map(
    prior_entry: Optional[Mapping[str, Any]] = None,
    user_overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Values the model must keep as they are.

    Manual-flagged stored values come first; every non-null per-call override
    supersedes them. Keys follow the model's JSON shape.
    """
    overrides: Dict[str, Any] = {key: None for key in OVERRIDE_KEYS}
    entry = prior_entry or {}

    if entry.get("title_manual"):
        overrides["title"] = entry.get("title_raw") or ""
    if entry.get("mood_manual"):
        overrides["moodLabel"] = entry.get("mood_label")
        overrides["moodScore"] = entry.get("mood_score")
    if entry.get("category_manual"):
        overrides["category"] = entry.get("category")
    if entry.get("date_manual") and entry.get("day_date"):
        overrides["date"] = to_iso_date(entry["day_date"])

    for client_key, key in CLIENT_OVERRIDE_KEYS.items():
        value = (user_overrides or {}).get(client_key)
        if value is not None:
            overrides[key] = value
    return overrides


def build_tidy_prompt(overrides: Mapping[str, Any]) -> str:
    """Instructions sent ahead of the user's text."""
    return (
        "Return ONLY JSON. No explanation.\n"
        'If a field in "userOverrides" is NOT null, DO NOT modify it.\n\n'
        "userOverrides:\n"
        f"{json.dumps(dict(overrides), indent=2, ensure_ascii=False, default=str)}\n\n"
        "Strict Rules:\n"
        "- Answer in the same language the user writes in.\n\n"
        "Rules:\n"
        "- Always rewrite content into a clearer, refined version.\n"
        "- If an override is null, infer it from the text.\n"
        "- title: short, max 8 words.\n"
        f"- moodLabel: one of {', '.join(ALLOWED_MOODS)}\n"
        "- moodScore: float 1.0-10.0\n"
        f"- category: one of {', '.join(ALLOWED_CATEGORIES)}\n"
        "- Soften any harsh words.\n\n"
        "Date rules:\n"
        "- Do NOT invent or guess a specific date.\n"
        "- Return a date only if the text holds an explicit date or a clear time "
        'reference (e.g. "yesterday", "14 April 2025").\n'
        '- Otherwise return "date": "".\n\n'
        "Response shape:\n"
        '{ "title": "...", "content": "...", "moodLabel": "...", "moodScore": 5.0, '
        '"category": "...", "date": "YYYY-MM-DD" }'
    )


def _text_field(parsed: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = parsed.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def interpret_tidy_response(text: str, raw: Optional[str], overrides: Optional[Mapping[str, Any]] = None) -> TidyResult:
    """
    Build a TidyResult from the model's raw answer.

    Never raises on malformed output: unparseable answers fall back to the
    overrides and the original text.
    """
    overrides = overrides or {}
    strategy, parsed = extract_json(raw)
    parsed = parsed or {}
    if strategy is None:
        _logger.warning("Tidy response had no parseable JSON; using fallbacks")

    title = first_present(overrides.get("title"), _text_field(parsed, "title"), first_words(text))
    content = _text_field(parsed, "content", "text") or text

    override_mood = normalize_mood(overrides.get("moodLabel"))
    mood_label = override_mood or normalize_mood(_text_field(parsed, "moodLabel", "mood"))

    mood_score = clamp_mood_score(overrides.get("moodScore"))
    if mood_score is None:
        model_score = parsed.get("moodScore")
        if model_score is None:
            model_score = parsed.get("mood_score")
        mood_score = clamp_mood_score(model_score)

    category = normalize_category(overrides.get("category")) or normalize_category(
        _text_field(parsed, "category", "tags")
    )

    date_candidate = parse_day_date(_text_field(parsed, "date")) or parse_day_date(overrides.get("date"))

    return TidyResult(
        title=title,
        content_tidied=content,
        mood_label=mood_label,
        mood_score=mood_score,
        category=category,
        date_candidate=date_candidate,
        raw_response=raw or "",
        parsed=parsed,
        strategy=strategy,
    )


def fallback_tidy_result(text: str, overrides: Optional[Mapping[str, Any]] = None) -> TidyResult:
    """Result used when the model is unavailable: raw text plus the overrides."""
    return interpret_tidy_response(text, None, overrides)


async def run_tidy(
    text: str,
    prior_entry: Optional[Mapping[str, Any]] = None,
    user_overrides: Optional[Mapping[str, Any]] = None,
) -> TidyResult:
    """
    Tidy `text` with the model.

    Raises:
        ValueError: empty text.
        ConfigurationError: no model credential configured.
        GenerationError: the model API failed.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Empty text for tidy")

    overrides = build_override_map(prior_entry, user_overrides)
    prompt = f"{build_tidy_prompt(overrides)}\n\nUser text:\n{text}"

    raw = await generate_text(prompt, temperature=0.4, max_output_tokens=2048)
    result = interpret_tidy_response(text, raw, overrides)
    _logger.info(
        "Tidy finished (strategy=%s, mood=%s, category=%s, date=%s)",
        result.strategy,
        result.mood_label,
        result.category,
        result.date_candidate,
    )
    return result
