from unittest.mock import MagicMock

from google.api_core import exceptions as gcp_exceptions

from cleannote.storage import FirestoreStore


def make_doc(doc_id, data, exists=True):
    doc = MagicMock()
    doc.id = doc_id
    doc.exists = exists
    doc.to_dict.return_value = dict(data) if data is not None else None
    return doc


def make_store():
    client = MagicMock()
    return FirestoreStore(client=client), client


def test_entries_live_under_the_owner():
    store, client = make_store()
    entries = client.collection.return_value.document.return_value.collection.return_value
    entries.add.return_value = (None, MagicMock(id="abc"))

    created = store.add_entry("u1", {"content_raw": "hi"})

    client.collection.assert_called_with("users")
    client.collection.return_value.document.assert_called_with("u1")
    client.collection.return_value.document.return_value.collection.assert_called_with("entries")
    assert created == {"content_raw": "hi", "user_id": "u1", "id": "abc"}


def test_missing_entry_reads_as_none():
    store, client = make_store()
    entries = client.collection.return_value.document.return_value.collection.return_value
    entries.document.return_value.get.return_value = make_doc("x", None, exists=False)
    assert store.get_entry("u1", "x") is None


def test_update_missing_entry_returns_none():
    store, client = make_store()
    ref = client.collection.return_value.document.return_value.collection.return_value.document.return_value
    ref.update.side_effect = gcp_exceptions.NotFound("gone")
    assert store.update_entry("u1", "x", {"title_raw": "t"}) is None


def test_upsert_insight_creates_first():
    store, client = make_store()
    ref = client.collection.return_value.document.return_value.collection.return_value.document.return_value
    ref.get.return_value = make_doc("2025-03-03", {"week_start": "2025-03-03"})

    saved = store.upsert_insight("u1", "2025-03-03", {"week_start": "2025-03-03", "generated_at": "t1"})

    created = ref.create.call_args[0][0]
    assert created["created_at"] == "t1"
    ref.update.assert_not_called()
    assert saved["id"] == "2025-03-03"


def test_upsert_insight_falls_back_to_update_when_row_exists():
    store, client = make_store()
    ref = client.collection.return_value.document.return_value.collection.return_value.document.return_value
    ref.create.side_effect = gcp_exceptions.AlreadyExists("exists")
    ref.get.return_value = make_doc("2025-03-03", {"week_start": "2025-03-03"})

    store.upsert_insight("u1", "2025-03-03", {"week_start": "2025-03-03", "generated_at": "t2", "created_at": "x"})

    update = ref.update.call_args[0][0]
    assert update == {"week_start": "2025-03-03", "generated_at": "t2"}


def test_delete_entry_reports_missing():
    store, client = make_store()
    ref = client.collection.return_value.document.return_value.collection.return_value.document.return_value
    ref.get.return_value = make_doc("x", None, exists=False)
    assert store.delete_entry("u1", "x") is False
    ref.delete.assert_not_called()
