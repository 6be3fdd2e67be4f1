"""
reconcile.py - Computing the stored fields of a journal entry

Three write paths go through here:

- build_entry(): a new entry from raw user input.
- apply_edit():  a human edit of an existing entry.
- merge_tidy():  an AI tidy pass over an existing entry.

Manual flags record that a human supplied a field; a flagged field is
pinned and an AI tidy pass may not overwrite it. The override state of one
field is a FieldState(value, manual) and merge_field() combines an incoming
state with the stored one.

Mood label and mood score share the single `mood_manual` flag. The flag
pins only the half that holds a value, so a score entered alone still lets
a tidy pass fill in the label.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from .dates import day_start, parse_day_date, to_date, utcnow, week_index
from .validators import clamp_mood_score, normalize_category, normalize_mood

_logger = logging.getLogger(__name__)

MIN_VALID_YEAR = 2000
TITLE_FALLBACK_WORDS = 6

# field name -> manual flag guarding it
MANUAL_FLAGS = {
    "title": "title_manual",
    "mood_label": "mood_manual",
    "mood_score": "mood_manual",
    "category": "category_manual",
    "day_date": "date_manual",
}


@dataclass(frozen=True)
class FieldState:
    value: Any = None
    manual: bool = False


def merge_field(incoming: FieldState, stored: FieldState) -> FieldState:
    """
    Combine an incoming field state with the stored one.

    A manual incoming state always wins (explicit human input). Otherwise a
    manual stored state is kept, otherwise a present incoming value wins,
    otherwise the stored state is kept.
    """
    if incoming.manual:
        return incoming
    if stored.manual:
        return stored
    if incoming.value is not None:
        return incoming
    return stored


def first_present(*values):
    """First value that is neither None nor a blank string."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def first_words(text: str, n: int = TITLE_FALLBACK_WORDS) -> Optional[str]:
    words = (text or "").split()
    return " ".join(words[:n]) or None


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def is_fully_tidied(entry: Mapping[str, Any]) -> bool:
    """An entry with an accepted tidied version and every analytic field."""
    score = entry.get("mood_score")
    return (
        bool(entry.get("tidied_at"))
        and bool(entry.get("title_tidied"))
        and bool(entry.get("content_tidied"))
        and bool(entry.get("mood_label"))
        and isinstance(score, (int, float))
        and not isinstance(score, bool)
        and score == score
        and bool(entry.get("category"))
    )


def context_day(entry: Mapping[str, Any]) -> date:
    """Day an entry is displayed under: day_date, else created_at."""
    return to_date(entry.get("day_date") or entry["created_at"])


def stored_state(entry: Mapping[str, Any], field: str) -> FieldState:
    """Current FieldState of `field` on a stored entry."""
    flag = MANUAL_FLAGS[field]
    if field == "title":
        value = first_present(entry.get("title_tidied"), entry.get("title_raw"))
    else:
        value = entry.get(field)
    return FieldState(value, bool(entry.get(flag)))


def build_entry(
    content: Any,
    title: Any = None,
    mood_label: Any = None,
    mood_score: Any = None,
    category: Any = None,
    day_date: Any = None,
    title_tidied: Any = None,
    content_tidied: Any = None,
    title_manual: bool = False,
    mood_manual: bool = False,
    category_manual: bool = False,
    date_manual: bool = False,
    is_tidied: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Compute the stored fields of a new entry.

    Raises ValueError if the content is empty after trimming.
    """
    raw_content = _clean_text(content)
    if not raw_content:
        raise ValueError("Missing content")
    now = now or utcnow()

    title_raw = _clean_text(title)
    raw_mood = _clean_text(mood_label)
    raw_category = _clean_text(category)
    score = clamp_mood_score(mood_score)
    parsed_date = parse_day_date(day_date)

    empty = FieldState()
    title_state = merge_field(FieldState(title_raw, bool(title_raw) or bool(title_manual)), empty)
    mood_state = merge_field(
        FieldState(normalize_mood(raw_mood), bool(raw_mood) or score is not None or bool(mood_manual)), empty
    )
    category_state = merge_field(
        FieldState(normalize_category(raw_category), bool(raw_category) or bool(category_manual)), empty
    )
    date_state = merge_field(FieldState(parsed_date, parsed_date is not None or bool(date_manual)), empty)

    tidied_title_in = _clean_text(title_tidied)
    tidied_content_in = _clean_text(content_tidied)

    filled_by_hand = (
        title_state.value is not None
        and mood_state.value is not None
        and category_state.value is not None
        and date_state.value is not None
        and score is not None
    )
    stamp_tidied = bool(is_tidied) or filled_by_hand or bool(tidied_title_in or tidied_content_in)

    entry = {
        "content_raw": raw_content,
        "title_raw": title_state.value,
        "title_tidied": tidied_title_in or (title_state.value if filled_by_hand else None),
        "content_tidied": tidied_content_in or (raw_content if filled_by_hand else None),
        "tidied_at": now if stamp_tidied else None,
        "mood_label": mood_state.value,
        "mood_score": score,
        "category": category_state.value,
        "day_date": date_state.value,
        "week_index": week_index(date_state.value or now),
        "title_manual": title_state.manual,
        "mood_manual": mood_state.manual,
        "category_manual": category_state.manual,
        "date_manual": date_state.manual,
        "created_at": now,
        "updated_at": now,
    }
    _logger.debug("Built entry (tidied=%s, filled_by_hand=%s)", stamp_tidied, filled_by_hand)
    return entry


# editable field -> (manual flag, normalizer)
_EDITABLE = {
    "title_raw": ("title_manual", _clean_text),
    "content_raw": (None, _clean_text),
    "title_tidied": (None, _clean_text),
    "content_tidied": (None, _clean_text),
    "mood_label": ("mood_manual", normalize_mood),
    "mood_score": ("mood_manual", clamp_mood_score),
    "category": ("category_manual", normalize_category),
    "day_date": ("date_manual", parse_day_date),
}


def apply_edit(entry: Mapping[str, Any], changes: Mapping[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Compute the update for a human edit of `entry`.

    `changes` holds only the keys the client sent. Present fields are
    explicit edits: their flag becomes the explicit flag when one is sent,
    else true for any non-blank input (even an unrecognised mood) and false
    for a cleared one. Flags of untouched fields only change through an
    explicit flag.

    Raises ValueError for an invalid day_date or mood_score, or emptied
    content.
    """
    now = now or utcnow()
    update: Dict[str, Any] = {}
    flags: Dict[str, bool] = {}

    for field, (flag, normalize) in _EDITABLE.items():
        if field not in changes:
            continue
        raw_value = changes[field]
        value = normalize(raw_value)
        supplied = first_present(raw_value) is not None
        if field == "day_date" and supplied and value is None:
            raise ValueError("Invalid day_date; expected YYYY-MM-DD, ISO datetime or null")
        if field == "mood_score" and supplied and value is None:
            raise ValueError("Invalid mood_score; expected a number or null")
        if field == "content_raw" and value is None:
            raise ValueError("Missing content")
        update[field] = value
        if flag:
            flags[flag] = flags.get(flag, False) or supplied

    for flag in ("title_manual", "mood_manual", "category_manual", "date_manual"):
        explicit = changes.get(flag)
        if explicit is not None:
            flags[flag] = bool(explicit)
    update.update(flags)

    if "day_date" in update:
        base = update["day_date"] or entry.get("created_at") or now
        update["week_index"] = week_index(base)
    update["updated_at"] = now
    return update


def merge_tidy(
    entry: Mapping[str, Any],
    result,
    client_overrides: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Compute the update for an AI tidy pass over a stored entry.

    Per field: manual-flagged stored value -> per-call client override ->
    AI value -> prior stored value -> default. `result` is a TidyResult.
    Manual flags are left untouched.
    """
    now = now or utcnow()
    client = client_overrides or {}

    def resolve(field: str, client_value, ai_value, default=None):
        stored = stored_state(entry, field)
        if field in ("mood_label", "mood_score") and stored.value is None:
            # a null half of the mood pair is never pinned
            stored = FieldState(None, False)
        incoming = FieldState(first_present(client_value, ai_value), False)
        merged = merge_field(incoming, stored)
        return first_present(merged.value, default)

    title = resolve(
        "title",
        _clean_text(client.get("title")),
        result.title,
        first_words(entry.get("content_raw") or result.content_tidied),
    )
    mood_label = resolve("mood_label", normalize_mood(client.get("mood_label")), normalize_mood(result.mood_label))
    mood_label = normalize_mood(mood_label)
    mood_score = resolve("mood_score", clamp_mood_score(client.get("mood_score")), clamp_mood_score(result.mood_score))
    category = resolve(
        "category", normalize_category(client.get("category")), normalize_category(result.category)
    )
    category = normalize_category(category)

    stored_date = entry.get("day_date")
    if stored_date is not None and to_date(stored_date).year < MIN_VALID_YEAR:
        stored_date = None
    date_stored = FieldState(stored_date, bool(entry.get("date_manual")))
    date_incoming = FieldState(first_present(parse_day_date(client.get("date")), result.date_candidate), False)
    final_date = merge_field(date_incoming, date_stored).value or day_start(to_date(now))

    content_tidied = first_present(result.content_tidied, entry.get("content_raw"))

    return {
        "title_tidied": title,
        "content_tidied": content_tidied,
        "tidied_at": now,
        "mood_label": mood_label,
        "mood_score": mood_score,
        "category": category,
        "day_date": final_date,
        "week_index": week_index(final_date),
        "updated_at": now,
    }
