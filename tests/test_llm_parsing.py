from cleannote.llm_parsing import extract_json, first_balanced_object, heuristic_extract


def test_direct_json():
    assert extract_json('{"title": "Hi"}') == ("direct_json", {"title": "Hi"})


def test_think_block_is_stripped():
    strategy, parsed = extract_json('<think>reasoning</think>{"a": 1}')
    assert strategy == "stripped_tags_json"
    assert parsed == {"a": 1}


def test_json_inside_prose_and_fences():
    text = 'Sure! Here it is:\n```json\n{"summary": "good week", "x": {"y": 2}}\n```\nThanks'
    strategy, parsed = extract_json(text)
    assert strategy == "regex_extracted_json"
    assert parsed == {"summary": "good week", "x": {"y": 2}}


def test_light_repair_of_single_quotes_and_trailing_commas():
    strategy, parsed = extract_json("Answer: {'title': 'Day', 'tags': ['a', 'b',],}")
    assert strategy == "regex_extracted_json"
    assert parsed == {"title": "Day", "tags": ["a", "b"]}


def test_no_json_returns_none():
    assert extract_json("just words") == (None, None)
    assert extract_json("") == (None, None)
    assert extract_json(None) == (None, None)


def test_balanced_object_ignores_braces_in_strings():
    assert first_balanced_object('x {"a": "}"} y') == '{"a": "}"}'


def test_heuristic_extract_bullets_and_recommendations():
    text = (
        "I had a steady week overall.\n\n"
        "- Finished the report\n"
        "- Long walk on Sunday\n\n"
        "Recommendations:\n1. Sleep earlier\n2. Call a friend"
    )
    out = heuristic_extract(text)
    assert out["summary"] == "I had a steady week overall."
    assert out["highlights"] == ["Finished the report", "Long walk on Sunday"]
    assert out["recommendations"] == ["Sleep earlier", "Call a friend"]


def test_heuristic_extract_numbered_and_quotes():
    out = heuristic_extract('Felt "lighter" after "yoga".\n1. Keep stretching')
    assert out["highlights"] == ["lighter", "yoga"]
    assert out["recommendations"] == ["Keep stretching"]
