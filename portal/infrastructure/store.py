"""Document store for portal records.

Two interchangeable backends share one small interface:

- ``MongoStore`` talks to MongoDB through a pooled ``pymongo`` client.
- ``MemoryStore`` keeps documents in process; used when ``MONGODB_URI`` is
  empty (local development) and by the test suite.

Documents are plain dicts keyed by a string ``_id``. Filters are equality
matches where a list field matches when it contains the value, which is the
MongoDB semantics for array fields. The database is the only arbiter of
concurrent writes: last write wins.
"""
import copy
import threading
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo import errors as mongo_errors

from portal.core.config import Settings, settings as default_settings
from portal.core.logging import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]
SortSpec = Sequence[Tuple[str, int]]

USERS = "users"
CLASSES = "classes"
ANNOUNCEMENTS = "announcements"
ASSIGNMENTS = "assignments"
EVENTS = "events"
MEDIA = "media"

# collection -> fields that must be unique across documents
UNIQUE_FIELDS: Dict[str, Tuple[str, ...]] = {USERS: ("email",)}


class StoreError(Exception):
    """Raised when the backing database fails."""


class DuplicateKeyError(StoreError):
    """Raised when an insert or update violates a unique field."""

    def __init__(self, collection: str, field: str):
        self.collection = collection
        self.field = field
        super().__init__(f"Duplicate value for {collection}.{field}")


def new_id() -> str:
    return uuid.uuid4().hex


def to_model_dict(doc: Optional[Document]) -> Optional[Document]:
    """Rename ``_id`` to ``id`` so a stored document can feed a pydantic model."""
    if doc is None:
        return None
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return data


class DocumentStore(Protocol):
    def insert(self, collection: str, doc: Document) -> str: ...

    def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    def find(self, collection: str, filters: Optional[Document] = None,
             sort: Optional[SortSpec] = None) -> List[Document]: ...

    def find_one(self, collection: str, filters: Document) -> Optional[Document]: ...

    def update(self, collection: str, doc_id: str, changes: Document) -> Optional[Document]: ...

    def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool: ...

    def pull(self, collection: str, doc_id: str, field: str, value: Any) -> bool: ...

    def pull_everywhere(self, collection: str, field: str, value: Any) -> int: ...

    def push(self, collection: str, doc_id: str, field: str, value: Any) -> bool: ...

    def update_element(self, collection: str, doc_id: str, field: str, element_id: str,
                       changes: Document) -> Optional[Document]: ...

    def delete(self, collection: str, doc_id: str) -> bool: ...

    def ping(self) -> bool: ...


def _matches(doc: Document, filters: Optional[Document]) -> bool:
    for key, expected in (filters or {}).items():
        actual = doc.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            candidates = expected["$in"]
            if isinstance(actual, list):
                if not any(item in candidates for item in actual):
                    return False
            elif actual not in candidates:
                return False
        elif isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(field: str):
    # None sorts first, like MongoDB
    return lambda doc: (doc.get(field) is not None, doc.get(field))


class MemoryStore:
    """In-process document store with MongoDB-like semantics.

    Example:
        >>> store = MemoryStore()
        >>> class_id = store.insert("classes", {"name": "7B", "students": []})
        >>> store.add_to_set("classes", class_id, "students", "u1")
        True
    """

    def __init__(self, unique_fields: Optional[Dict[str, Tuple[str, ...]]] = None):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._unique = UNIQUE_FIELDS if unique_fields is None else unique_fields
        self._lock = threading.RLock()
        logger.info("Using in-memory document store")

    def _docs(self, collection: str) -> Dict[str, Document]:
        return self._collections.setdefault(collection, {})

    def _check_unique(self, collection: str, doc: Document, skip_id: Optional[str] = None):
        for field in self._unique.get(collection, ()):
            if field not in doc:
                continue
            for other_id, other in self._docs(collection).items():
                if other_id != skip_id and other.get(field) == doc[field]:
                    raise DuplicateKeyError(collection, field)

    def insert(self, collection: str, doc: Document) -> str:
        with self._lock:
            record = copy.deepcopy(doc)
            record.setdefault("_id", new_id())
            self._check_unique(collection, record)
            self._docs(collection)[record["_id"]] = record
            return record["_id"]

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, filters: Optional[Document] = None,
             sort: Optional[SortSpec] = None) -> List[Document]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs(collection).values() if _matches(d, filters)]
        for field, direction in reversed(list(sort or ())):
            docs.sort(key=_sort_key(field), reverse=direction == DESCENDING)
        return docs

    def find_one(self, collection: str, filters: Document) -> Optional[Document]:
        found = self.find(collection, filters)
        return found[0] if found else None

    def update(self, collection: str, doc_id: str, changes: Document) -> Optional[Document]:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            if doc is None:
                return None
            self._check_unique(collection, changes, skip_id=doc_id)
            doc.update(copy.deepcopy(changes))
            return copy.deepcopy(doc)

    def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            if doc is None:
                return False
            items = doc.setdefault(field, [])
            if value not in items:
                items.append(copy.deepcopy(value))
            return True

    def pull(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            if doc is None:
                return False
            doc[field] = [item for item in doc.get(field, []) if item != value]
            return True

    def pull_everywhere(self, collection: str, field: str, value: Any) -> int:
        with self._lock:
            touched = 0
            for doc in self._docs(collection).values():
                items = doc.get(field, [])
                if value in items:
                    doc[field] = [item for item in items if item != value]
                    touched += 1
            return touched

    def push(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            if doc is None:
                return False
            doc.setdefault(field, []).append(copy.deepcopy(value))
            return True

    def update_element(self, collection: str, doc_id: str, field: str, element_id: str,
                       changes: Document) -> Optional[Document]:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            for item in (doc or {}).get(field, []):
                if item.get("id") == element_id:
                    item.update(copy.deepcopy(changes))
                    return copy.deepcopy(item)
            return None

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._docs(collection).pop(doc_id, None) is not None

    def ping(self) -> bool:
        return True


class MongoStore:
    """MongoDB-backed document store.

    Uses string ``_id`` values generated by the application so both backends
    expose identical ids.
    """

    def __init__(self, client: MongoClient, database_name: str):
        self.client = client
        self.db = client[database_name]
        for collection, fields in UNIQUE_FIELDS.items():
            for field in fields:
                self.db[collection].create_index([(field, ASCENDING)], unique=True)
        logger.info(f"MongoStore ready on database '{database_name}'")

    def insert(self, collection: str, doc: Document) -> str:
        record = dict(doc)
        record.setdefault("_id", new_id())
        try:
            self.db[collection].insert_one(record)
        except mongo_errors.DuplicateKeyError as e:
            raise DuplicateKeyError(collection, _duplicate_field(e, collection)) from e
        except mongo_errors.PyMongoError as e:
            raise StoreError(str(e)) from e
        return record["_id"]

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self.db[collection].find_one({"_id": doc_id})

    def find(self, collection: str, filters: Optional[Document] = None,
             sort: Optional[SortSpec] = None) -> List[Document]:
        cursor = self.db[collection].find(filters or {})
        if sort:
            cursor = cursor.sort(list(sort))
        return list(cursor)

    def find_one(self, collection: str, filters: Document) -> Optional[Document]:
        return self.db[collection].find_one(filters)

    def update(self, collection: str, doc_id: str, changes: Document) -> Optional[Document]:
        try:
            return self.db[collection].find_one_and_update(
                {"_id": doc_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except mongo_errors.DuplicateKeyError as e:
            raise DuplicateKeyError(collection, _duplicate_field(e, collection)) from e

    def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        result = self.db[collection].update_one({"_id": doc_id}, {"$addToSet": {field: value}})
        return result.matched_count > 0

    def pull(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        result = self.db[collection].update_one({"_id": doc_id}, {"$pull": {field: value}})
        return result.matched_count > 0

    def pull_everywhere(self, collection: str, field: str, value: Any) -> int:
        result = self.db[collection].update_many({field: value}, {"$pull": {field: value}})
        return result.modified_count

    def push(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        result = self.db[collection].update_one({"_id": doc_id}, {"$push": {field: value}})
        return result.matched_count > 0

    def update_element(self, collection: str, doc_id: str, field: str, element_id: str,
                       changes: Document) -> Optional[Document]:
        """Set ``changes`` on the one element of ``field`` whose ``id`` matches.

        Other elements are untouched, so concurrent pushes to the same array
        are kept.
        """
        doc = self.db[collection].find_one_and_update(
            {"_id": doc_id, f"{field}.id": element_id},
            {"$set": {f"{field}.$.{key}": value for key, value in changes.items()}},
            projection={field: {"$elemMatch": {"id": element_id}}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None or not doc.get(field):
            return None
        return doc[field][0]

    def delete(self, collection: str, doc_id: str) -> bool:
        return self.db[collection].delete_one({"_id": doc_id}).deleted_count > 0

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except mongo_errors.PyMongoError as e:
            logger.error(f"MongoDB ping failed: {e}")
            return False


def _duplicate_field(error: mongo_errors.DuplicateKeyError, collection: str) -> str:
    key_value = (error.details or {}).get("keyValue") or {}
    if key_value:
        return next(iter(key_value))
    return UNIQUE_FIELDS.get(collection, ("_id",))[0]


def create_store(config: Optional[Settings] = None) -> DocumentStore:
    """Build the store selected by settings.

    Returns a MongoStore when MONGODB_URI is set, otherwise a MemoryStore.
    """
    config = config or default_settings
    if config.uses_memory_store:
        return MemoryStore()

    logger.info(f"Connecting to MongoDB database '{config.database_name}'")
    client = MongoClient(
        config.mongodb_uri,
        tz_aware=True,
        maxPoolSize=50,
        serverSelectionTimeoutMS=5000,
    )
    return MongoStore(client, config.database_name)
