"""Class endpoints: listing, CRUD and roster management."""
from typing import List

from fastapi import APIRouter, Depends, status

from portal.api.deps import get_services, require
from portal.core.auth import principal_for
from portal.core.policy import Action, ResourceKind, Scope, authorize, has_scope
from portal.domain.school import ClassCreate, ClassGroup, ClassUpdate
from portal.domain.user import User
from portal.services.registry import PortalServices

router = APIRouter(prefix="/classes", tags=["Classes"])


@router.get("", response_model=List[ClassGroup])
def list_classes(
    user: User = Depends(require(Action.READ, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    """Admins see every class; everybody else only the classes they belong to."""
    if has_scope(principal_for(user), Action.READ, ResourceKind.CLASS, Scope.ALL):
        return services.classes.list()
    return services.classes.list_for(user)


@router.post("", response_model=ClassGroup, status_code=status.HTTP_201_CREATED)
def create_class(
    req: ClassCreate,
    user: User = Depends(require(Action.CREATE, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    return services.classes.create(req, user)


@router.get("/{class_id}", response_model=ClassGroup)
def get_class(
    class_id: str,
    user: User = Depends(require(Action.READ, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    group = services.classes.get(class_id)
    authorize(principal_for(user), Action.READ, ResourceKind.CLASS, owns=group.has_member(user.id))
    return group


@router.put("/{class_id}", response_model=ClassGroup)
def update_class(
    class_id: str,
    req: ClassUpdate,
    _: User = Depends(require(Action.UPDATE, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    return services.classes.update(class_id, req)


@router.delete("/{class_id}")
def delete_class(
    class_id: str,
    _: User = Depends(require(Action.DELETE, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    """Delete a class. Its announcements and assignments are not removed."""
    services.classes.delete(class_id)
    return {"message": "Class deleted"}


@router.post("/{class_id}/students/{student_id}", response_model=ClassGroup)
def add_student(
    class_id: str,
    student_id: str,
    _: User = Depends(require(Action.MANAGE_MEMBERS, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    return services.classes.add_student(class_id, student_id)


@router.delete("/{class_id}/students/{student_id}", response_model=ClassGroup)
def remove_student(
    class_id: str,
    student_id: str,
    _: User = Depends(require(Action.MANAGE_MEMBERS, ResourceKind.CLASS)),
    services: PortalServices = Depends(get_services),
):
    return services.classes.remove_student(class_id, student_id)
