"""
voice.py - Voice note transcription

Uploads recorded audio to a hosted Whisper endpoint (Hugging Face inference
router by default, see TRANSCRIBE_URL) and returns the transcript.

The endpoint is picky about Content-Type and answers some types with an
HTML error page, so the upload is retried with a ranked list of MIME types
(the client's own type first) until one answer is JSON without an `error`
key.

With `tidy=true` the transcript also gets quick keyword-based fields (title,
mood, category, date, summary) so the entry form can be prefilled without a
model call.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import requests
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from . import gcp_clients
from .auth import get_current_user
from .dates import to_iso_date, utcnow
from .gcp_clients import ConfigurationError
from .validators import normalize_category, normalize_mood

_logger = logging.getLogger(__name__)
router = APIRouter()

CONTENT_TYPES = (
    "audio/m4a",
    "audio/mp4",
    "audio/x-m4a",
    "audio/wav",
    "audio/flac",
    "audio/ogg",
    "audio/webm",
    "application/octet-stream",
)

CATEGORY_KEYWORDS = {
    "relationships": ("family", "relationship", "partner", "friend"),
    "work": ("work", "project", "deadline", "meeting", "boss", "client"),
    "finance": ("money", "salary", "budget", "invoice", "expense"),
    "health": ("gym", "doctor", "sleep", "run", "workout"),
    "study": ("exam", "class", "lecture", "homework"),
}

_ISO_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?\n]")
_WORD_RE = re.compile(r"[^\W\d_]+")


class TranscriptionError(RuntimeError):
    """Every content type was rejected by the transcription endpoint."""


def content_type_order(preferred: Optional[str]) -> List[str]:
    order = [preferred] if preferred else []
    order.extend(ct for ct in CONTENT_TYPES if ct not in order)
    return order


def _extract_transcript(data: Any) -> Optional[str]:
    if isinstance(data, list):
        parts = [_extract_transcript(item) for item in data]
        return " ".join(p for p in parts if p) or None
    if not isinstance(data, dict):
        return None
    for key in ("text", "transcription"):
        if isinstance(data.get(key), str):
            return data[key]
    results = data.get("results")
    if isinstance(results, list):
        texts = [str(r.get("text") or r.get("transcript") or "") for r in results if isinstance(r, dict)]
        return " ".join(t for t in texts if t) or None
    return None


def _try_content_type(audio: bytes, content_type: str):
    """Return (ok, transcript_or_error_detail) for one upload attempt."""
    response = requests.post(
        gcp_clients.TRANSCRIBE_URL,
        headers={
            "Authorization": f"Bearer {gcp_clients.HF_TOKEN}",
            "Content-Type": content_type,
            "Accept": "application/json",
        },
        data=audio,
        timeout=gcp_clients.HTTP_TIMEOUT_SECONDS,
    )
    body = (response.text or "").strip()
    if not body.startswith(("{", "[")):
        return False, f"{response.status_code}: {body[:200]}"
    try:
        data = response.json()
    except ValueError:
        return False, f"{response.status_code}: {body[:200]}"
    if isinstance(data, dict) and data.get("error"):
        return False, f"{response.status_code}: {data['error']}"
    return True, _extract_transcript(data)


def transcribe_audio_bytes(audio: bytes, preferred_content_type: Optional[str] = None) -> str:
    """
    Transcribe raw audio bytes.

    Returns the transcript ("" when the endpoint heard nothing).

    Raises:
        ConfigurationError: HF_TOKEN is not set.
        TranscriptionError: every content type failed.
    """
    if not gcp_clients.HF_TOKEN:
        raise ConfigurationError("Missing HF_TOKEN env var")

    last_error = None
    for content_type in content_type_order(preferred_content_type):
        try:
            ok, detail = _try_content_type(audio, content_type)
        except requests.RequestException as e:
            _logger.warning("Transcription request failed for %s: %s", content_type, e)
            last_error = str(e)
            continue
        if ok:
            _logger.info("Transcribed %d bytes using content type %s", len(audio), content_type)
            return (detail or "").strip()
        _logger.debug("Content type %s rejected: %s", content_type, detail)
        last_error = detail

    raise TranscriptionError(f"All content-types failed. Last error: {str(last_error)[:1000]}")


def heuristic_tidy(text: str, today: Optional[str] = None) -> Dict[str, Any]:
    """Keyword-based prefill for a transcript; no model involved."""
    first_sentence = next((s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()), "")
    title = " ".join(first_sentence.split()[:8]) or "Untitled Entry"

    lowered = text.lower()
    mood = "neutral"
    for word in _WORD_RE.findall(lowered):
        found = normalize_mood(word)
        if found:
            mood = found
            break

    category = "other"
    for candidate, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            category = normalize_category(candidate) or "other"
            break

    match = _ISO_DATE_RE.search(text)
    date = match.group(1) if match else (today or to_iso_date(utcnow()))
    summary = " ".join(text.split()[:40])
    return {"title": title, "mood": mood, "category": category, "date": date, "summary": summary}


@router.post("/voice/transcribe")
def transcribe_endpoint(
    file: UploadFile = File(None),
    tidy: str = Form(""),
    user: dict = Depends(get_current_user),
):
    if file is None:
        raise HTTPException(status_code=400, detail="No audio file uploaded")
    audio = file.file.read()
    if not audio:
        raise HTTPException(status_code=400, detail="No audio file uploaded")

    try:
        transcript = transcribe_audio_bytes(audio, file.content_type)
    except ConfigurationError as e:
        _logger.error("Transcription misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except TranscriptionError as e:
        _logger.exception("Transcription failed for user %s: %s", user["id"], e)
        raise HTTPException(status_code=502, detail="Transcription failed")

    if not transcript:
        return {"transcript": ""}
    if tidy.lower() != "true":
        return {"transcript": transcript}
    return {"transcript": transcript, "tidy": heuristic_tidy(transcript)}
