"""School events calendar."""
from portal.domain.school import Event, EventCreate
from portal.domain.user import User
from portal.infrastructure.store import EVENTS
from portal.services.base import CollectionService, utcnow


class EventService(CollectionService[Event]):
    collection = EVENTS
    model = Event
    label = "Event"
    default_sort = [("date", 1)]

    def create(self, payload: EventCreate, author: User) -> Event:
        return self._insert({
            "title": payload.title,
            "description": payload.description,
            "date": payload.date,
            "author": author.id,
            "created_at": utcnow(),
        })
