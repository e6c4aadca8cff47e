"""Announcement endpoints. Reading is public for global announcements."""
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from portal.api.deps import get_services, require
from portal.core.auth import get_optional_user
from portal.core.errors import Forbidden, Unauthorized
from portal.core.policy import Action, ResourceKind
from portal.domain.school import Announcement, AnnouncementCreate, AnnouncementUpdate
from portal.domain.user import User
from portal.services.registry import PortalServices

router = APIRouter(prefix="/announcements", tags=["Announcements"])


@router.get("", response_model=List[Announcement])
def list_announcements(
    class_id: Optional[str] = None,
    user: Optional[User] = Depends(get_optional_user),
    services: PortalServices = Depends(get_services),
):
    """Global announcements plus those of the caller's classes, newest first."""
    return services.announcements.list_visible(user, class_id=class_id)


@router.post("", response_model=Announcement, status_code=status.HTTP_201_CREATED)
def create_announcement(
    req: AnnouncementCreate,
    user: User = Depends(require(Action.CREATE, ResourceKind.ANNOUNCEMENT)),
    services: PortalServices = Depends(get_services),
):
    return services.announcements.create(req, user)


@router.get("/{announcement_id}", response_model=Announcement)
def get_announcement(
    announcement_id: str,
    user: Optional[User] = Depends(get_optional_user),
    services: PortalServices = Depends(get_services),
):
    announcement = services.announcements.get(announcement_id)
    if not services.announcements.is_visible(announcement, user):
        if user is None:
            raise Unauthorized()
        raise Forbidden("Access denied: Not a member of this class")
    return announcement


@router.put("/{announcement_id}", response_model=Announcement)
def update_announcement(
    announcement_id: str,
    req: AnnouncementUpdate,
    _: User = Depends(require(Action.UPDATE, ResourceKind.ANNOUNCEMENT)),
    services: PortalServices = Depends(get_services),
):
    return services.announcements.update(announcement_id, req)


@router.delete("/{announcement_id}")
def delete_announcement(
    announcement_id: str,
    _: User = Depends(require(Action.DELETE, ResourceKind.ANNOUNCEMENT)),
    services: PortalServices = Depends(get_services),
):
    services.announcements.delete(announcement_id)
    return {"message": "Announcement deleted"}
