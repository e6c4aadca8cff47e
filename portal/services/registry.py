"""Wiring of the service layer.

Services are built once per application and reached through
``request.app.state.services``; nothing is a module-level singleton.
"""
from dataclasses import dataclass
from typing import Optional

from portal.core.config import Settings
from portal.infrastructure.store import DocumentStore
from portal.infrastructure.uploads import UploadStorage
from portal.services.announcements import AnnouncementService
from portal.services.assignments import AssignmentService
from portal.services.classes import ClassService
from portal.services.events import EventService
from portal.services.media import MediaService
from portal.services.users import UserService


@dataclass
class PortalServices:
    store: DocumentStore
    uploads: UploadStorage
    users: UserService
    classes: ClassService
    announcements: AnnouncementService
    assignments: AssignmentService
    events: EventService
    media: MediaService


def build_services(
    store: DocumentStore, uploads: UploadStorage, config: Optional[Settings] = None,
) -> PortalServices:
    users = UserService(store, config)
    classes = ClassService(store, users)
    return PortalServices(
        store=store,
        uploads=uploads,
        users=users,
        classes=classes,
        announcements=AnnouncementService(store, classes),
        assignments=AssignmentService(store, classes, uploads),
        events=EventService(store),
        media=MediaService(store, uploads),
    )
