import math

import pytest

from cleannote.validators import (
    ALLOWED_CATEGORIES,
    ALLOWED_MOODS,
    clamp_mood_score,
    is_valid_category,
    is_valid_mood,
    normalize_category,
    normalize_mood,
)


@pytest.mark.parametrize("value,expected", [
    ("happy", "happy"),
    ("  Calm ", "calm"),
    ("Gembira", "joyful"),
    ("sedih", "sad"),
    ("anxiety!!", "anxious"),
    ("STRESS", "stressed"),
    ("capek", "tired"),
    ("meh", None),
    ("", None),
    (None, None),
    (42, None),
])
def test_normalize_mood(value, expected):
    assert normalize_mood(value) == expected


@pytest.mark.parametrize("value,expected", [
    ("work", "work"),
    ("kerja", "work"),
    ("Keluarga", "relationships"),
    ("lain-lain", "other"),
    ("money", "finance"),
    ("gardening", None),
    (None, None),
])
def test_normalize_category(value, expected):
    assert normalize_category(value) == expected


@pytest.mark.parametrize("value", ["Gembira", "anxiety!!", "xyz", "calm", "okay", "lelah"])
def test_normalize_mood_is_idempotent_and_closed(value):
    once = normalize_mood(value)
    assert once is None or once in ALLOWED_MOODS
    assert normalize_mood(once) == once


def test_every_canonical_value_maps_to_itself():
    assert all(normalize_mood(m) == m for m in ALLOWED_MOODS)
    assert all(normalize_category(c) == c for c in ALLOWED_CATEGORIES)


def test_validity_helpers():
    assert is_valid_mood("calm")
    assert not is_valid_mood("Calm")
    assert is_valid_category("daily")
    assert not is_valid_category(None)


@pytest.mark.parametrize("value,expected", [
    (5, 5.0),
    ("7.5", 7.5),
    (0, 1.0),
    (42, 10.0),
    (None, None),
    ("", None),
    ("abc", None),
    (True, None),
    (math.nan, None),
    (math.inf, None),
])
def test_clamp_mood_score(value, expected):
    assert clamp_mood_score(value) == expected
