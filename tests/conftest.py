import copy
import itertools
from datetime import datetime

import pytest
import pytz
from fastapi.testclient import TestClient

from cleannote import auth, storage
from cleannote.main import app


def utc(*args):
    return pytz.utc.localize(datetime(*args))


class InMemoryStore:
    """Dict-backed stand-in for FirestoreStore with the same methods."""

    def __init__(self):
        self.users = {}
        self.entries = {}
        self.insights = {}
        self._ids = itertools.count(1)
        self.fail_create_user = False

    def create_user(self, external_id, email):
        if self.fail_create_user:
            raise RuntimeError("database unavailable")
        user_id = f"user-{next(self._ids)}"
        self.users[user_id] = {"id": user_id, "external_id": external_id, "email": email}
        return dict(self.users[user_id])

    def get_user(self, user_id):
        user = self.users.get(user_id)
        return dict(user) if user else None

    def find_user_by_external_id(self, external_id):
        for user in self.users.values():
            if user["external_id"] == external_id:
                return dict(user)
        return None

    def add_entry(self, user_id, data):
        entry_id = f"entry-{next(self._ids)}"
        record = dict(data, id=entry_id, user_id=user_id)
        self.entries.setdefault(user_id, {})[entry_id] = record
        return copy.deepcopy(record)

    def get_entry(self, user_id, entry_id):
        entry = self.entries.get(user_id, {}).get(entry_id)
        return copy.deepcopy(entry) if entry else None

    def update_entry(self, user_id, entry_id, update):
        entry = self.entries.get(user_id, {}).get(entry_id)
        if entry is None:
            return None
        entry.update(update)
        return copy.deepcopy(entry)

    def delete_entry(self, user_id, entry_id):
        return self.entries.get(user_id, {}).pop(entry_id, None) is not None

    def list_entries(self, user_id):
        rows = sorted(self.entries.get(user_id, {}).values(), key=lambda e: e["created_at"], reverse=True)
        return copy.deepcopy(rows)

    def list_week_entries(self, user_id, week_idx):
        return [e for e in self.list_entries(user_id) if e["week_index"] == week_idx]

    def get_insight(self, user_id, week_start):
        row = self.insights.get((user_id, week_start))
        return dict(row) if row else None

    def upsert_insight(self, user_id, week_start, data):
        key = (user_id, week_start)
        if key in self.insights:
            update = dict(data)
            update.pop("created_at", None)
            self.insights[key].update(update)
        else:
            self.insights[key] = dict(data, id=week_start, created_at=data.get("generated_at"))
        return dict(self.insights[key])


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def user(store):
    return store.create_user("ext-1", "me@example.com")


@pytest.fixture
def client(store, user):
    """TestClient signed in as `user`."""
    app.dependency_overrides[storage.get_store] = lambda: store
    app.dependency_overrides[auth.get_current_user] = lambda: user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client(store):
    """TestClient with the real session dependency and the in-memory store."""
    app.dependency_overrides[storage.get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
