"""
validators.py - Mood / category normalization for CleanNote

This module is the single source of truth for what a valid mood label and a
valid category are. Free-form values (typed by a user or returned by the
model) are mapped onto the fixed enumerations:

1. Lowercase and trim the input.
2. Return it unchanged if it already is a canonical value.
3. Look it up in a bilingual synonym table (English + Indonesian).
4. Strip everything that is not a letter (extended Latin included) or a
   space and retry the synonym lookup.
5. Otherwise return None. Unknown values are never guessed.

Example Usage:
- normalize_mood("Gembira") -> "joyful"
- normalize_mood("anxiety!!") -> "anxious"
- normalize_category("kerja") -> "work"
- normalize_mood("meh") -> None
"""

import math
import re
from typing import Any, Optional

ALLOWED_MOODS = (
    "joyful",
    "happy",
    "calm",
    "neutral",
    "tired",
    "sad",
    "anxious",
    "stressed",
    "frustrated",
    "angry",
)

ALLOWED_CATEGORIES = (
    "personal",
    "relationships",
    "health",
    "habits",
    "work",
    "study",
    "creativity",
    "goals",
    "reflection",
    "finance",
    "daily",
    "other",
)

MIN_MOOD_SCORE = 1.0
MAX_MOOD_SCORE = 10.0

# Each surface form maps to exactly one canonical mood.
MOOD_SYNONYMS = {
    # english
    "happiness": "happy",
    "glad": "happy",
    "joy": "joyful",
    "excited": "joyful",
    "tiredness": "tired",
    "exhausted": "tired",
    "sleepy": "tired",
    "sadness": "sad",
    "anxiousness": "anxious",
    "anxiety": "anxious",
    "worried": "anxious",
    "stress": "stressed",
    "frustration": "frustrated",
    "anger": "angry",
    "relaxed": "calm",
    "peaceful": "calm",
    "okay": "neutral",
    # indonesian
    "senang": "happy",
    "bahagia": "happy",
    "gembira": "joyful",
    "capek": "tired",
    "lelah": "tired",
    "sedih": "sad",
    "cemas": "anxious",
    "khawatir": "anxious",
    "marah": "angry",
    "frustasi": "frustrated",
    "stres": "stressed",
    "tenang": "calm",
    "netral": "neutral",
}

CATEGORY_SYNONYMS = {
    # english
    "relationship": "relationships",
    "family": "relationships",
    "fitness": "health",
    "habit": "habits",
    "job": "work",
    "studying": "study",
    "school": "study",
    "creative": "creativity",
    "goal": "goals",
    "money": "finance",
    "misc": "other",
    # indonesian
    "personalia": "personal",
    "keluarga": "relationships",
    "hubungan": "relationships",
    "kesehatan": "health",
    "kebiasaan": "habits",
    "kerja": "work",
    "pekerjaan": "work",
    "belajar": "study",
    "kreatif": "creativity",
    "tujuan": "goals",
    "refleksi": "reflection",
    "keuangan": "finance",
    "harian": "daily",
    "lain": "other",
    "lain-lain": "other",
}

# Letters (ASCII + Latin-1 Supplement/Extended-A/B + Latin Extended Additional) and spaces.
_NON_LETTER_RE = re.compile(r"[^a-zA-Z\u00C0-\u024F\u1E00-\u1EFF\s]")
_NON_LETTER_OR_DASH_RE = re.compile(r"[^a-zA-Z\u00C0-\u024F\u1E00-\u1EFF\s-]")


def _normalize(value: Any, allowed, synonyms, strip_re) -> Optional[str]:
    if not isinstance(value, str):
        return None
    low = value.lower().strip()
    if not low:
        return None
    if low in allowed:
        return low
    if low in synonyms:
        return synonyms[low]
    cleaned = strip_re.sub("", low).strip()
    if cleaned in allowed:
        return cleaned
    return synonyms.get(cleaned)


def normalize_mood(value: Any) -> Optional[str]:
    """Map a free-form mood onto ALLOWED_MOODS, or None when unknown."""
    return _normalize(value, ALLOWED_MOODS, MOOD_SYNONYMS, _NON_LETTER_RE)


def normalize_category(value: Any) -> Optional[str]:
    """Map a free-form category onto ALLOWED_CATEGORIES, or None when unknown."""
    return _normalize(value, ALLOWED_CATEGORIES, CATEGORY_SYNONYMS, _NON_LETTER_OR_DASH_RE)


def is_valid_mood(value: Any) -> bool:
    return isinstance(value, str) and value in ALLOWED_MOODS


def is_valid_category(value: Any) -> bool:
    return isinstance(value, str) and value in ALLOWED_CATEGORIES


def clamp_mood_score(value: Any) -> Optional[float]:
    """
    Coerce a mood score to a float in [1.0, 10.0].

    Missing, non-numeric and non-finite values give None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score):
        return None
    return max(MIN_MOOD_SCORE, min(MAX_MOOD_SCORE, score))
