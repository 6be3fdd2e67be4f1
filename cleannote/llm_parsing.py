"""
llm_parsing.py - Turning free-form model output into structured data

The model is asked for JSON only, but answers often arrive wrapped in prose,
markdown fences or `<think>...</think>` debug blocks. Parsing is an ordered
list of strategies; the first one that yields a JSON object wins:

1. direct_json          - the whole answer is a JSON object
2. stripped_tags_json   - remove <think> blocks / HTML-like tags, retry
3. regex_extracted_json - take the first balanced {...} block, with a light
                          repair pass (single quotes, trailing commas)

When every JSON strategy fails, `heuristic_extract` reads the text as prose:
first paragraph as a summary, bullet lines as highlights, numbered lines
(or a "Recommendations:" section) as recommendations.

Every function here is pure and never raises on bad input.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BULLET_RE = re.compile(r"(?:\n|^)\s*[-•*]\s+([^\n]+)")
_NUMBERED_RE = re.compile(r"(?:\n|^)\s*\d+[.)]\s+([^\n]+)")
_QUOTE_RE = re.compile(r'"(.*?)"')
_RECOMMENDATIONS_RE = re.compile(r"recommendations?\s*[:\-]\s*(.*)", re.IGNORECASE | re.DOTALL)

MAX_HIGHLIGHTS = 6
MAX_RECOMMENDATIONS = 4


def _loads_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def strip_tags(text: str) -> str:
    """Remove <think>...</think> blocks and any remaining HTML-like tags."""
    return _TAG_RE.sub("", _THINK_BLOCK_RE.sub("", text)).strip()


def first_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced `{...}` substring, honouring JSON strings.

    Returns None when no opening brace is ever closed.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def _repair(jtext: str) -> str:
    fixed = jtext.replace("'", '"')
    return _TRAILING_COMMA_RE.sub(r"\1", fixed)


def parse_direct_json(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(text.strip())


def parse_stripped_tags_json(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(strip_tags(text))


def parse_regex_extracted_json(text: str) -> Optional[Dict[str, Any]]:
    block = first_balanced_object(strip_tags(text)) or first_balanced_object(text)
    if not block:
        # Unbalanced output (e.g. truncated); fall back to the widest {...} span.
        match = re.search(r"\{.*\}", text, re.DOTALL)
        block = match.group(0) if match else None
    if not block:
        return None
    return _loads_object(block) or _loads_object(_repair(block))


JSON_STRATEGIES: Tuple[Tuple[str, Callable[[str], Optional[Dict[str, Any]]]], ...] = (
    ("direct_json", parse_direct_json),
    ("stripped_tags_json", parse_stripped_tags_json),
    ("regex_extracted_json", parse_regex_extracted_json),
)


def extract_json(text: Optional[str]) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """
    Run the JSON strategies in order.

    Returns (strategy_name, parsed_object) for the first success, or
    (None, None) when no strategy produced a JSON object.
    """
    if not text or not isinstance(text, str):
        return None, None
    for name, strategy in JSON_STRATEGIES:
        parsed = strategy(text)
        if parsed is not None:
            return name, parsed
    return None, None


def heuristic_extract(text: Optional[str]) -> Dict[str, Any]:
    """
    Read non-JSON output as prose.

    Returns a dict with `summary` (first paragraph or None), `highlights`
    (bullets, else quoted phrases) and `recommendations` (a
    "Recommendations:" section, else numbered lines).
    """
    out: Dict[str, Any] = {"summary": None, "highlights": [], "recommendations": []}
    if not text or not isinstance(text, str):
        return out
    text = strip_tags(text)

    paragraphs = [p.strip() for p in re.split(r"\n{2,}", text) if p.strip()]
    if paragraphs:
        out["summary"] = paragraphs[0]

    bullets = _BULLET_RE.findall(text)
    if bullets:
        out["highlights"] = [b.strip() for b in bullets][:MAX_HIGHLIGHTS]
    else:
        quotes = [q.strip() for q in _QUOTE_RE.findall(text) if q.strip()]
        out["highlights"] = quotes[:MAX_HIGHLIGHTS]

    rec_match = _RECOMMENDATIONS_RE.search(text)
    recommendations: List[str] = []
    if rec_match:
        for line in rec_match.group(1).splitlines():
            cleaned = re.sub(r"^\s*[\d\-.)•*]*\s*", "", line).strip()
            if cleaned:
                recommendations.append(cleaned)
    else:
        recommendations = [n.strip() for n in _NUMBERED_RE.findall(text)]
    out["recommendations"] = recommendations[:MAX_RECOMMENDATIONS]
    return out
