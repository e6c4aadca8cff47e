"""Event endpoints. Reading is public."""
from typing import List

from fastapi import APIRouter, Depends, status

from portal.api.deps import get_services, require
from portal.core.policy import Action, ResourceKind
from portal.domain.school import Event, EventCreate, EventUpdate
from portal.domain.user import User
from portal.services.registry import PortalServices

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=List[Event])
def list_events(services: PortalServices = Depends(get_services)):
    """Upcoming and past events ordered by date."""
    return services.events.list()


@router.post("", response_model=Event, status_code=status.HTTP_201_CREATED)
def create_event(
    req: EventCreate,
    user: User = Depends(require(Action.CREATE, ResourceKind.EVENT)),
    services: PortalServices = Depends(get_services),
):
    return services.events.create(req, user)


@router.get("/{event_id}", response_model=Event)
def get_event(event_id: str, services: PortalServices = Depends(get_services)):
    return services.events.get(event_id)


@router.put("/{event_id}", response_model=Event)
def update_event(
    event_id: str,
    req: EventUpdate,
    _: User = Depends(require(Action.UPDATE, ResourceKind.EVENT)),
    services: PortalServices = Depends(get_services),
):
    return services.events.update(event_id, req)


@router.delete("/{event_id}")
def delete_event(
    event_id: str,
    _: User = Depends(require(Action.DELETE, ResourceKind.EVENT)),
    services: PortalServices = Depends(get_services),
):
    services.events.delete(event_id)
    return {"message": "Event deleted"}
