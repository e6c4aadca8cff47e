"""Shared CRUD plumbing for services backed by one store collection."""
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from portal.core.errors import NotFound
from portal.core.logging import get_logger
from portal.infrastructure.store import DocumentStore, SortSpec, to_model_dict

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def plain(values: dict) -> dict:
    """Replace enum members by their values so the store only sees BSON types."""
    return {k: v.value if isinstance(v, Enum) else v for k, v in values.items()}


class CollectionService(Generic[ModelT]):
    """Typed access to a single collection.

    Subclasses set ``collection``, ``model`` and ``label`` (used in
    NotFound messages) and add their own domain operations.
    """

    collection: str
    model: Type[ModelT]
    label: str = "Resource"
    default_sort: Optional[SortSpec] = None

    def __init__(self, store: DocumentStore):
        self.store = store

    def _to_model(self, doc) -> ModelT:
        return self.model(**to_model_dict(doc))

    def find(self, doc_id: str) -> Optional[ModelT]:
        doc = self.store.get(self.collection, doc_id)
        return self._to_model(doc) if doc is not None else None

    def get(self, doc_id: str) -> ModelT:
        item = self.find(doc_id)
        if item is None:
            raise NotFound(f"{self.label} not found")
        return item

    def list(self, filters: Optional[dict] = None) -> List[ModelT]:
        docs = self.store.find(self.collection, filters, sort=self.default_sort)
        return [self._to_model(d) for d in docs]

    def _insert(self, doc: dict) -> ModelT:
        doc_id = self.store.insert(self.collection, doc)
        logger.info(f"Created {self.label.lower()}", extra={"collection": self.collection, "resource_id": doc_id})
        return self.get(doc_id)

    def update(self, doc_id: str, changes: BaseModel) -> ModelT:
        """Apply the fields explicitly set on ``changes``."""
        values = plain(changes.model_dump(exclude_unset=True, exclude_none=True))
        if not values:
            return self.get(doc_id)
        doc = self.store.update(self.collection, doc_id, values)
        if doc is None:
            raise NotFound(f"{self.label} not found")
        logger.info(f"Updated {self.label.lower()}", extra={"collection": self.collection, "resource_id": doc_id})
        return self._to_model(doc)

    def delete(self, doc_id: str) -> None:
        if not self.store.delete(self.collection, doc_id):
            raise NotFound(f"{self.label} not found")
        logger.info(f"Deleted {self.label.lower()}", extra={"collection": self.collection, "resource_id": doc_id})
