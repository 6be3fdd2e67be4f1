"""
entries.py - Journal entry endpoints

CRUD for a user's journal entries plus the AI tidy routes:

- POST   /entries                    create (201)
- GET    /entries                    list; q / start / end / limit filters
- GET    /entries/{id}               read one
- PATCH  /entries/{id}               human edit
- DELETE /entries/{id}               delete
- POST   /entries/preview-tidy       tidy unsaved text, nothing stored
- POST   /entries/{id}/preview-tidy  tidy a stored entry, nothing stored
- POST   /entries/{id}/tidy          tidy a stored entry and persist it

Field computation (manual flags, promotion, week_index, tidy merge) lives
in reconcile.py; this module only validates requests and talks to storage.

When the model fails during a persisted tidy, the entry is still tidied
from its raw text (manual and stored values still apply) and the response
carries `degraded: true`. Preview routes answer 502 instead.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from .auth import get_current_user
from .dates import parse_day_date, to_date, to_iso_date, utcnow
from .gcp_clients import ConfigurationError, GenerationError
from .reconcile import apply_edit, build_entry, context_day, merge_tidy
from .storage import get_store
from .tidy import fallback_tidy_result, run_tidy

_logger = logging.getLogger(__name__)
router = APIRouter(prefix="/entries")

MAX_LIST_LIMIT = 500


# -------------------------
# Request models
# -------------------------
class EntryCreate(BaseModel):
    content: Optional[str] = None
    title: Optional[str] = None
    title_tidied: Optional[str] = None
    content_tidied: Optional[str] = None
    mood_label: Optional[str] = None
    mood: Optional[str] = None
    mood_score: Optional[Any] = None
    category: Optional[str] = None
    day_date: Optional[str] = None
    title_manual: bool = False
    mood_manual: bool = False
    category_manual: bool = False
    date_manual: bool = False
    is_tidied: bool = False


class EntryUpdate(BaseModel):
    title_raw: Optional[str] = None
    content_raw: Optional[str] = None
    title_tidied: Optional[str] = None
    content_tidied: Optional[str] = None
    mood_label: Optional[str] = None
    mood_score: Optional[Any] = None
    category: Optional[str] = None
    day_date: Optional[str] = None
    title_manual: Optional[bool] = None
    mood_manual: Optional[bool] = None
    category_manual: Optional[bool] = None
    date_manual: Optional[bool] = None


class TidyRequest(BaseModel):
    content: Optional[str] = None
    title: Optional[str] = None
    mood_label: Optional[str] = None
    mood_score: Optional[Any] = None
    category: Optional[str] = None
    date: Optional[str] = None


# -------------------------
# Helpers
# -------------------------
def serialize_entry(entry: Mapping[str, Any]) -> Dict[str, Any]:
    """Entry as returned to clients; day_date as YYYY-MM-DD."""
    out = dict(entry)
    out["day_date"] = to_iso_date(entry["day_date"]) if entry.get("day_date") else None
    return out


def _load_entry(store, user_id: str, entry_id: str) -> Dict[str, Any]:
    entry = store.get_entry(user_id, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Not found")
    return entry


def _overrides(payload: TidyRequest) -> Dict[str, Any]:
    return {
        "title": payload.title,
        "mood_label": payload.mood_label,
        "mood_score": payload.mood_score,
        "category": payload.category,
        "date": payload.date,
    }


def _tidy_text(payload: TidyRequest, entry: Dict[str, Any]) -> str:
    """Text sent for a stored entry: the request body wins over content_raw."""
    return (payload.content or "").strip() or entry["content_raw"]


async def _tidy_or_fail(text: str, prior_entry, overrides):
    """run_tidy() for the preview routes, with errors mapped to HTTP."""
    try:
        return await run_tidy(text, prior_entry=prior_entry, user_overrides=overrides)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        _logger.error("Tidy misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except GenerationError as e:
        _logger.exception("Tidy preview failed: %s", e)
        raise HTTPException(status_code=502, detail="AI service error while tidying.")


# -------------------------
# CRUD endpoints
# -------------------------
@router.post("", status_code=201)
def create_entry(payload: EntryCreate, user: dict = Depends(get_current_user), store=Depends(get_store)):
    if payload.day_date and parse_day_date(payload.day_date) is None:
        raise HTTPException(status_code=400, detail="Invalid day_date; expected YYYY-MM-DD or ISO datetime")
    try:
        data = build_entry(
            payload.content,
            title=payload.title,
            mood_label=payload.mood_label or payload.mood,
            mood_score=payload.mood_score,
            category=payload.category,
            day_date=payload.day_date,
            title_tidied=payload.title_tidied,
            content_tidied=payload.content_tidied,
            title_manual=payload.title_manual,
            mood_manual=payload.mood_manual,
            category_manual=payload.category_manual,
            date_manual=payload.date_manual,
            is_tidied=payload.is_tidied,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    entry = store.add_entry(user["id"], data)
    _logger.info("Entry %s created for user %s", entry["id"], user["id"])
    return {"entry": serialize_entry(entry)}


@router.get("")
def list_entries(
    q: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=MAX_LIST_LIMIT),
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    """Own entries, newest first; `start`/`end` bound the context day (inclusive)."""
    start_day = parse_day_date(start)
    end_day = parse_day_date(end)
    if (start and start_day is None) or (end and end_day is None):
        raise HTTPException(status_code=400, detail="Invalid start/end date")

    needle = (q or "").strip().lower()
    results = []
    for entry in store.list_entries(user["id"]):
        day = context_day(entry)
        if start_day and day < to_date(start_day):
            continue
        if end_day and day > to_date(end_day):
            continue
        if needle:
            haystack = " ".join(
                str(entry.get(key) or "")
                for key in ("title_raw", "title_tidied", "content_raw", "content_tidied")
            ).lower()
            if needle not in haystack:
                continue
        results.append(serialize_entry(entry))
        if limit and len(results) >= limit:
            break
    return {"entries": results}


@router.get("/{entry_id}")
def get_entry(entry_id: str, user: dict = Depends(get_current_user), store=Depends(get_store)):
    return {"entry": serialize_entry(_load_entry(store, user["id"], entry_id))}


@router.patch("/{entry_id}")
def update_entry(
    entry_id: str,
    payload: EntryUpdate,
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    entry = _load_entry(store, user["id"], entry_id)
    try:
        update = apply_edit(entry, payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    updated = store.update_entry(user["id"], entry_id, update)
    if updated is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {"entry": serialize_entry(updated)}


@router.delete("/{entry_id}")
def delete_entry(entry_id: str, user: dict = Depends(get_current_user), store=Depends(get_store)):
    if not store.delete_entry(user["id"], entry_id):
        raise HTTPException(status_code=404, detail="Not found")
    _logger.info("Entry %s deleted for user %s", entry_id, user["id"])
    return {"ok": True}


# -------------------------
# Tidy endpoints
# -------------------------
@router.post("/preview-tidy")
async def preview_tidy(payload: TidyRequest, user: dict = Depends(get_current_user)):
    """Tidy text that has not been saved yet."""
    if not payload.content or not payload.content.strip():
        raise HTTPException(status_code=400, detail="Missing content")
    result = await _tidy_or_fail(payload.content, None, _overrides(payload))
    preview = result.to_preview()
    if not preview["day_date"]:
        preview["day_date"] = to_iso_date(utcnow())
    return {"preview": preview}


@router.post("/{entry_id}/preview-tidy")
async def preview_tidy_entry(
    entry_id: str,
    payload: Optional[TidyRequest] = None,
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    """What a tidy pass would store for this entry, without storing it."""
    payload = payload or TidyRequest()
    entry = _load_entry(store, user["id"], entry_id)
    overrides = _overrides(payload)
    text = _tidy_text(payload, entry)
    result = await _tidy_or_fail(text, entry, overrides)
    merged = merge_tidy(entry, result, overrides)
    return {"preview": serialize_entry(merged)}


@router.post("/{entry_id}/tidy")
async def tidy_entry(
    entry_id: str,
    payload: Optional[TidyRequest] = None,
    user: dict = Depends(get_current_user),
    store=Depends(get_store),
):
    """Tidy a stored entry and persist the result."""
    payload = payload or TidyRequest()
    entry = _load_entry(store, user["id"], entry_id)
    overrides = _overrides(payload)
    text = _tidy_text(payload, entry)
    degraded = False
    try:
        result = await run_tidy(text, prior_entry=entry, user_overrides=overrides)
    except ConfigurationError as e:
        _logger.error("Tidy misconfigured: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    except GenerationError as e:
        _logger.exception("Tidy failed for entry %s; storing raw text as tidied: %s", entry_id, e)
        result = fallback_tidy_result(text)
        degraded = True

    update = merge_tidy(entry, result, overrides)
    updated = store.update_entry(user["id"], entry_id, update)
    if updated is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {"entry": serialize_entry(updated), "degraded": degraded}
