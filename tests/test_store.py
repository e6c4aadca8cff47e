"""Tests for the in-memory document store and upload storage."""
import io
from unittest.mock import MagicMock

import pytest
from pymongo import DESCENDING

from portal.core.errors import ValidationError
from portal.domain.school import MediaKind
from portal.infrastructure.store import USERS, DuplicateKeyError, MemoryStore, MongoStore, to_model_dict
from portal.infrastructure.uploads import UploadStorage, clean_filename, kind_for


class TestMemoryStore:
    """MongoDB-like behaviour of the in-process store."""

    def test_insert_and_get(self, store):
        doc_id = store.insert("classes", {"name": "7B", "students": []})

        doc = store.get("classes", doc_id)
        assert doc["_id"] == doc_id
        assert doc["name"] == "7B"

    def test_returned_documents_are_copies(self, store):
        doc_id = store.insert("classes", {"name": "7B", "students": []})

        store.get("classes", doc_id)["students"].append("intruder")

        assert store.get("classes", doc_id)["students"] == []

    def test_unique_email(self, store):
        store.insert(USERS, {"email": "a@school.org"})

        with pytest.raises(DuplicateKeyError) as exc_info:
            store.insert(USERS, {"email": "a@school.org"})

        assert exc_info.value.field == "email"

    def test_update_may_keep_own_unique_value(self, store):
        doc_id = store.insert(USERS, {"email": "a@school.org", "name": "A"})

        updated = store.update(USERS, doc_id, {"email": "a@school.org", "name": "B"})

        assert updated["name"] == "B"

    def test_update_to_taken_value_rejected(self, store):
        store.insert(USERS, {"email": "a@school.org"})
        other = store.insert(USERS, {"email": "b@school.org"})

        with pytest.raises(DuplicateKeyError):
            store.update(USERS, other, {"email": "a@school.org"})

    def test_update_missing_returns_none(self, store):
        assert store.update("events", "missing", {"title": "x"}) is None

    def test_filter_matches_array_members(self, store):
        store.insert("classes", {"name": "7B", "students": ["s1", "s2"]})
        store.insert("classes", {"name": "8A", "students": ["s3"]})

        found = store.find("classes", {"students": "s2"})

        assert [d["name"] for d in found] == ["7B"]

    def test_filter_in(self, store):
        for class_id in ("c1", "c2", "c3"):
            store.insert("assignments", {"class_id": class_id})

        found = store.find("assignments", {"class_id": {"$in": ["c1", "c3"]}})

        assert sorted(d["class_id"] for d in found) == ["c1", "c3"]

    def test_sort_descending(self, store):
        for n in (2, 3, 1):
            store.insert("events", {"n": n})

        found = store.find("events", sort=[("n", DESCENDING)])

        assert [d["n"] for d in found] == [3, 2, 1]

    def test_add_to_set_is_idempotent(self, store):
        doc_id = store.insert("classes", {"students": []})

        store.add_to_set("classes", doc_id, "students", "s1")
        store.add_to_set("classes", doc_id, "students", "s1")

        assert store.get("classes", doc_id)["students"] == ["s1"]

    def test_pull_everywhere(self, store):
        store.insert(USERS, {"email": "a@school.org", "classes": ["c1", "c2"]})
        store.insert(USERS, {"email": "b@school.org", "classes": ["c1"]})
        store.insert(USERS, {"email": "c@school.org", "classes": ["c2"]})

        touched = store.pull_everywhere(USERS, "classes", "c1")

        assert touched == 2
        assert all("c1" not in d["classes"] for d in store.find(USERS))

    def test_push_and_delete(self, store):
        doc_id = store.insert("assignments", {"submissions": []})

        assert store.push("assignments", doc_id, "submissions", {"id": "x"})
        assert store.get("assignments", doc_id)["submissions"] == [{"id": "x"}]
        assert store.delete("assignments", doc_id)
        assert not store.delete("assignments", doc_id)
        assert not store.push("assignments", doc_id, "submissions", {"id": "y"})

    def test_update_element_changes_only_the_match(self, store):
        doc_id = store.insert("assignments", {"submissions": [{"id": "s1"}, {"id": "s2"}]})

        updated = store.update_element("assignments", doc_id, "submissions", "s2", {"grade": 90})

        assert updated == {"id": "s2", "grade": 90}
        assert store.get("assignments", doc_id)["submissions"] == [{"id": "s1"}, {"id": "s2", "grade": 90}]

    def test_update_element_missing(self, store):
        doc_id = store.insert("assignments", {"submissions": [{"id": "s1"}]})

        assert store.update_element("assignments", doc_id, "submissions", "nope", {"grade": 1}) is None
        assert store.update_element("assignments", "nope", "submissions", "s1", {"grade": 1}) is None
        assert store.get("assignments", doc_id)["submissions"] == [{"id": "s1"}]

    def test_to_model_dict_renames_id(self):
        assert to_model_dict({"_id": "abc", "name": "7B"}) == {"id": "abc", "name": "7B"}
        assert to_model_dict(None) is None

    def test_ping(self):
        assert MemoryStore().ping()


class TestMongoStore:
    """Query shapes sent to pymongo."""

    def test_update_element_targets_one_array_entry(self):
        client = MagicMock()
        collection = client.__getitem__.return_value.__getitem__.return_value
        collection.find_one_and_update.return_value = {"_id": "a1", "submissions": [{"id": "s2", "grade": 70}]}
        store = MongoStore(client, "portal")

        updated = store.update_element("assignments", "a1", "submissions", "s2", {"grade": 70})

        assert updated == {"id": "s2", "grade": 70}
        query, update = collection.find_one_and_update.call_args.args
        assert query == {"_id": "a1", "submissions.id": "s2"}
        assert update == {"$set": {"submissions.$.grade": 70}}

    def test_update_element_no_match(self):
        client = MagicMock()
        collection = client.__getitem__.return_value.__getitem__.return_value
        collection.find_one_and_update.return_value = None

        assert MongoStore(client, "portal").update_element("assignments", "a1", "submissions", "s9", {}) is None


class TestUploadStorage:
    """Files on disk named <epoch-ms>-<sanitized name>."""

    def test_clean_filename(self):
        assert clean_filename("my essay (final).pdf") == "my_essay__final_.pdf"
        assert clean_filename("../../etc/passwd") == "passwd"
        assert clean_filename(None) == "upload"

    def test_kind_for(self):
        assert kind_for("photo.JPG") is MediaKind.IMAGE
        assert kind_for("clip.mp4") is MediaKind.VIDEO
        assert kind_for("notes.pdf") is MediaKind.FILE
        assert kind_for("blob", "image/png") is MediaKind.IMAGE

    def test_save_writes_file(self, uploads):
        url, stored = uploads.save("report card.pdf", io.BytesIO(b"%PDF-1.4"))

        prefix, _, name = stored.partition("-")
        assert prefix.isdigit()
        assert name == "report_card.pdf"
        assert url == f"/uploads/{stored}"
        assert (uploads.directory / stored).read_bytes() == b"%PDF-1.4"

    def test_oversized_file_rejected_and_removed(self, tmp_path):
        storage = UploadStorage(str(tmp_path), max_bytes=10)

        with pytest.raises(ValidationError):
            storage.save("big.bin", io.BytesIO(b"x" * 11))

        assert list(tmp_path.iterdir()) == []
