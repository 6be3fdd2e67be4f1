import asyncio
import json
from datetime import datetime

import pytest
import pytz

from cleannote import tidy
from cleannote.gcp_clients import GenerationError
from cleannote.reconcile import build_entry
from cleannote.tidy import build_override_map, build_tidy_prompt, interpret_tidy_response, run_tidy

NOW = pytz.utc.localize(datetime(2025, 3, 5, 12, 0))


def test_override_map_pins_manual_fields_and_client_overrides_win():
    entry = build_entry("text", title="Mine", mood_label="sad", mood_score=3, day_date="2025-02-01", now=NOW)
    overrides = build_override_map(entry, {"category": "work", "title": "Client title"})
    assert overrides == {
        "title": "Client title",
        "moodLabel": "sad",
        "moodScore": 3.0,
        "category": "work",
        "date": "2025-02-01",
    }


def test_override_map_leaves_unflagged_fields_null():
    entry = build_entry("text", now=NOW)
    assert build_override_map(entry, None) == {
        "title": None, "moodLabel": None, "moodScore": None, "category": None, "date": None,
    }


def test_prompt_forbids_inventing_dates_and_embeds_overrides():
    prompt = build_tidy_prompt({"title": "Keep me", "date": None})
    assert "Do NOT invent or guess a specific date" in prompt
    assert '"date": ""' in prompt
    assert "Keep me" in prompt
    assert "frustrated" in prompt and "creativity" in prompt


def test_interpret_full_answer():
    raw = json.dumps({
        "title": "A good day", "content": "I had a good day.", "moodLabel": "Senang",
        "moodScore": 12, "category": "kerja", "date": "2025-03-01",
    })
    result = interpret_tidy_response("had good day", raw, {})
    assert result.title == "A good day"
    assert result.content_tidied == "I had a good day."
    assert result.mood_label == "happy"
    assert result.mood_score == 10.0
    assert result.category == "work"
    assert result.date_candidate == pytz.utc.localize(datetime(2025, 3, 1))
    assert result.strategy == "direct_json"


def test_interpret_uses_overrides_and_alternate_keys():
    raw = 'Here you go: {"text": "Tidied.", "mood": "angry", "mood_score": "4", "tags": ["money"], "date": ""}'
    result = interpret_tidy_response("raw words here", raw, {"moodLabel": "calm", "date": "2025-01-10"})
    assert result.content_tidied == "Tidied."
    assert result.mood_label == "calm"
    assert result.mood_score == 4.0
    assert result.category == "finance"
    assert result.date_candidate == pytz.utc.localize(datetime(2025, 1, 10))


def test_interpret_garbage_falls_back_to_text():
    result = interpret_tidy_response("one two three four five six seven", "I cannot help", {})
    assert result.title == "one two three four five six"
    assert result.content_tidied == "one two three four five six seven"
    assert result.mood_label is None
    assert result.strategy is None


def test_run_tidy_rejects_empty_text():
    with pytest.raises(ValueError):
        asyncio.run(run_tidy("   "))


def test_run_tidy_sends_text_and_overrides(monkeypatch):
    seen = {}

    async def fake_generate(prompt, **kwargs):
        seen["prompt"] = prompt
        return '{"title": "T", "content": "C", "moodLabel": "calm", "moodScore": 6, "category": "daily", "date": ""}'

    monkeypatch.setattr(tidy, "generate_text", fake_generate)
    result = asyncio.run(run_tidy("my raw day", user_overrides={"category": "health"}))
    assert "my raw day" in seen["prompt"]
    assert '"category": "health"' in seen["prompt"]
    assert result.category == "health"
    assert result.date_candidate is None


def test_run_tidy_propagates_generation_error(monkeypatch):
    async def failing(prompt, **kwargs):
        raise GenerationError(503, "overloaded")

    monkeypatch.setattr(tidy, "generate_text", failing)
    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(run_tidy("text"))
    assert excinfo.value.status == 503
