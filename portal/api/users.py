"""User administration endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from portal.api.deps import get_services, require
from portal.core.errors import ValidationError
from portal.core.policy import Action, ResourceKind
from portal.domain.user import RegisterRequest, Role, User, UserUpdate
from portal.services.registry import PortalServices

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=List[User])
def list_users(
    role: Optional[Role] = None,
    _: User = Depends(require(Action.READ, ResourceKind.USER)),
    services: PortalServices = Depends(get_services),
):
    """List all users, optionally filtered by role. Admin only."""
    if role is not None:
        return services.users.list_by_role(role)
    return services.users.list()


@router.get("/students", response_model=List[User])
def list_students(
    _: User = Depends(require(Action.READ, ResourceKind.STUDENT_DIRECTORY)),
    services: PortalServices = Depends(get_services),
):
    """Students available for class rosters. Teachers and admins."""
    return services.users.list_by_role(Role.STUDENT)


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
def create_user(
    req: RegisterRequest,
    _: User = Depends(require(Action.CREATE, ResourceKind.USER)),
    services: PortalServices = Depends(get_services),
):
    return services.users.create(req)


@router.get("/{user_id}", response_model=User)
def get_user(
    user_id: str,
    _: User = Depends(require(Action.READ, ResourceKind.USER)),
    services: PortalServices = Depends(get_services),
):
    return services.users.get(user_id)


@router.put("/{user_id}", response_model=User)
def update_user(
    user_id: str,
    req: UserUpdate,
    _: User = Depends(require(Action.UPDATE, ResourceKind.USER)),
    services: PortalServices = Depends(get_services),
):
    return services.users.update(user_id, req)


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    admin: User = Depends(require(Action.DELETE, ResourceKind.USER)),
    services: PortalServices = Depends(get_services),
):
    if user_id == admin.id:
        raise ValidationError("Administrators cannot delete their own account")
    services.users.delete(user_id)
    return {"message": "User deleted"}
