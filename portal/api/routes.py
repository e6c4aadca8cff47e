"""REST routes of the school portal, mounted under the API prefix."""
from fastapi import APIRouter

from portal.api import announcements, assignments, auth, classes, events, media, users

router = APIRouter()

router.include_router(auth.router)
router.include_router(users.router)
router.include_router(classes.router)
router.include_router(announcements.router)
router.include_router(assignments.router)
router.include_router(events.router)
router.include_router(media.router)
