"""Announcements: global ones for everybody, class-bound ones for members."""
from typing import List, Optional

from portal.core.errors import ValidationError
from portal.domain.school import Announcement, AnnouncementCreate, AnnouncementScope
from portal.domain.user import Role, User
from portal.infrastructure.store import ANNOUNCEMENTS
from portal.services.base import CollectionService, utcnow
from portal.services.classes import ClassService


class AnnouncementService(CollectionService[Announcement]):
    collection = ANNOUNCEMENTS
    model = Announcement
    label = "Announcement"
    default_sort = [("created_at", -1)]

    def __init__(self, store, classes: ClassService):
        super().__init__(store)
        self.classes = classes

    def create(self, payload: AnnouncementCreate, author: User) -> Announcement:
        if payload.scope is AnnouncementScope.CLASS and self.classes.find(payload.class_id) is None:
            raise ValidationError("Unknown class for announcement")

        return self._insert({
            "title": payload.title,
            "content": payload.content,
            "scope": payload.scope.value,
            "class_id": payload.class_id if payload.scope is AnnouncementScope.CLASS else None,
            "author": author.id,
            "created_at": utcnow(),
        })

    def is_visible(self, announcement: Announcement, user: Optional[User]) -> bool:
        if announcement.scope is AnnouncementScope.GLOBAL:
            return True
        if user is None:
            return False
        return user.role is Role.ADMIN or self.classes.is_member(announcement.class_id, user)

    def list_visible(self, user: Optional[User], class_id: Optional[str] = None) -> List[Announcement]:
        """Newest first. Anonymous callers only see global announcements.

        Args:
            user: Caller, or None when anonymous
            class_id: Restrict to one class's announcements
        """
        if class_id is not None:
            items = self.list({"class_id": class_id})
        elif user is None:
            items = self.list({"scope": AnnouncementScope.GLOBAL.value})
        else:
            items = self.list()
        if user is not None and user.role is Role.ADMIN:
            return items

        member_of = set(self.classes.member_class_ids(user))
        return [
            a for a in items
            if a.scope is AnnouncementScope.GLOBAL or a.class_id in member_of
        ]
