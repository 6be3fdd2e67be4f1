"""
storage.py - Firestore persistence for users, entries and weekly insights

Layout:
    users/{user_id}                              -> user profile
    users/{user_id}/entries/{entry_id}           -> journal entries
    users/{user_id}/weekly_insights/{week_start} -> one insight per ISO week

Every method takes the owning user's id explicitly; an entry is only ever
looked up under its owner's document, so a foreign entry reads as missing.

Routes receive the store through the `get_store` FastAPI dependency so tests
can swap in another implementation with the same methods.
"""

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from .dates import utcnow
from .gcp_clients import get_firestore_client

_logger = logging.getLogger(__name__)

FIRESTORE_USERS_COLLECTION = "users"
FIRESTORE_ENTRIES_SUBCOLLECTION = "entries"
FIRESTORE_INSIGHTS_SUBCOLLECTION = "weekly_insights"


def _doc_to_dict(doc) -> Optional[Dict[str, Any]]:
    if not doc.exists:
        return None
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return data


class FirestoreStore:
    def __init__(self, client: Optional[firestore.Client] = None):
        self._client = client

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def _user_ref(self, user_id: str):
        return self.client.collection(FIRESTORE_USERS_COLLECTION).document(user_id)

    def _entries(self, user_id: str):
        return self._user_ref(user_id).collection(FIRESTORE_ENTRIES_SUBCOLLECTION)

    def _insights(self, user_id: str):
        return self._user_ref(user_id).collection(FIRESTORE_INSIGHTS_SUBCOLLECTION)

    # -------------------------
    # Users
    # -------------------------
    def create_user(self, external_id: str, email: str) -> Dict[str, Any]:
        user_id = uuid.uuid4().hex
        data = {"external_id": external_id, "email": email, "created_at": utcnow()}
        self._user_ref(user_id).create(data)
        _logger.info("Created local user %s for external id %s", user_id, external_id)
        return dict(data, id=user_id)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return _doc_to_dict(self._user_ref(user_id).get())

    def find_user_by_external_id(self, external_id: str) -> Optional[Dict[str, Any]]:
        query = (
            self.client.collection(FIRESTORE_USERS_COLLECTION)
            .where(filter=firestore.FieldFilter("external_id", "==", external_id))
            .limit(1)
        )
        for doc in query.stream():
            return _doc_to_dict(doc)
        return None

    # -------------------------
    # Entries
    # -------------------------
    def add_entry(self, user_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        record = dict(data, user_id=user_id)
        record.pop("id", None)
        _, doc_ref = self._entries(user_id).add(record)
        return dict(record, id=doc_ref.id)

    def get_entry(self, user_id: str, entry_id: str) -> Optional[Dict[str, Any]]:
        return _doc_to_dict(self._entries(user_id).document(entry_id).get())

    def update_entry(self, user_id: str, entry_id: str, update: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply `update` and return the stored entry, or None if it does not exist."""
        ref = self._entries(user_id).document(entry_id)
        try:
            ref.update(dict(update))
        except gcp_exceptions.NotFound:
            return None
        return _doc_to_dict(ref.get())

    def delete_entry(self, user_id: str, entry_id: str) -> bool:
        ref = self._entries(user_id).document(entry_id)
        if not ref.get().exists:
            return False
        ref.delete()
        return True

    def list_entries(self, user_id: str) -> List[Dict[str, Any]]:
        """All entries of the user, newest first by created_at."""
        query = self._entries(user_id).order_by("created_at", direction=firestore.Query.DESCENDING)
        return [_doc_to_dict(doc) for doc in query.stream()]

    def list_week_entries(self, user_id: str, week_idx: int) -> List[Dict[str, Any]]:
        query = self._entries(user_id).where(filter=firestore.FieldFilter("week_index", "==", week_idx))
        return [_doc_to_dict(doc) for doc in query.stream()]

    # -------------------------
    # Weekly insights
    # -------------------------
    def get_insight(self, user_id: str, week_start: str) -> Optional[Dict[str, Any]]:
        return _doc_to_dict(self._insights(user_id).document(week_start).get())

    def upsert_insight(self, user_id: str, week_start: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Create the week's insight, or overwrite it when it already exists.

        created_at is only written on creation.
        """
        ref = self._insights(user_id).document(week_start)
        try:
            ref.create(dict(data, created_at=data.get("generated_at") or utcnow()))
        except gcp_exceptions.AlreadyExists:
            _logger.debug("Insight %s/%s exists; updating in place", user_id, week_start)
            update = dict(data)
            update.pop("created_at", None)
            ref.update(update)
        return _doc_to_dict(ref.get())


_store: Optional[FirestoreStore] = None


def get_store() -> FirestoreStore:
    """FastAPI dependency returning the shared Firestore store."""
    global _store
    if _store is None:
        _store = FirestoreStore()
    return _store
