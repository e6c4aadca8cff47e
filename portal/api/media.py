"""Media gallery and file upload endpoints."""
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status

from portal.api.deps import get_services, require
from portal.core.policy import Action, ResourceKind
from portal.domain.school import MediaCreate, MediaItem, UploadResult
from portal.domain.user import User
from portal.services.registry import PortalServices

router = APIRouter(tags=["Media"])


@router.get("/media", response_model=List[MediaItem])
def list_media(services: PortalServices = Depends(get_services)):
    """Gallery entries, newest first."""
    return services.media.list()


@router.post("/media", response_model=MediaItem, status_code=status.HTTP_201_CREATED)
def create_media(
    req: MediaCreate,
    user: User = Depends(require(Action.CREATE, ResourceKind.MEDIA)),
    services: PortalServices = Depends(get_services),
):
    return services.media.create(req, user)


@router.delete("/media/{media_id}")
def delete_media(
    media_id: str,
    _: User = Depends(require(Action.DELETE, ResourceKind.MEDIA)),
    services: PortalServices = Depends(get_services),
):
    services.media.delete(media_id)
    return {"message": "Media deleted"}


@router.post("/upload", response_model=UploadResult, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile = File(...),
    _: User = Depends(require(Action.CREATE, ResourceKind.UPLOAD)),
    services: PortalServices = Depends(get_services),
):
    """Store a file and return its public URL, e.g. for a gallery entry."""
    return services.media.upload(file.filename, file.file, file.content_type)
