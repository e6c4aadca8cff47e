"""Media gallery entries and raw file uploads."""
from typing import BinaryIO, Optional

from portal.domain.school import MediaCreate, MediaItem, UploadResult
from portal.domain.user import User
from portal.infrastructure.store import MEDIA
from portal.infrastructure.uploads import UploadStorage, kind_for
from portal.services.base import CollectionService, utcnow


class MediaService(CollectionService[MediaItem]):
    collection = MEDIA
    model = MediaItem
    label = "Media item"
    default_sort = [("created_at", -1)]

    def __init__(self, store, uploads: UploadStorage):
        super().__init__(store)
        self.uploads = uploads

    def create(self, payload: MediaCreate, author: User) -> MediaItem:
        now = utcnow()
        return self._insert({
            "title": payload.title.strip() or "Untitled",
            "url": payload.url,
            "kind": payload.kind.value,
            "date": payload.date or now,
            "author": author.id,
            "created_at": now,
        })

    def upload(self, filename: Optional[str], stream: BinaryIO, content_type: Optional[str] = None) -> UploadResult:
        url, stored_name = self.uploads.save(filename, stream)
        return UploadResult(url=url, filename=stored_name, kind=kind_for(stored_name, content_type))
