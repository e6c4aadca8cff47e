"""FastAPI dependencies shared by the routers."""
from fastapi import Depends, Request

from portal.core.auth import get_current_user, principal_for
from portal.core.config import Settings
from portal.core.policy import Action, ResourceKind, authorize
from portal.domain.user import User
from portal.services.registry import PortalServices


def get_services(request: Request) -> PortalServices:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require(action: Action, kind: ResourceKind):
    """Dependency factory: authenticate, then check the role may ever do ``action``.

    Rules scoped to the caller's own resources pass here and are re-checked
    by the route once the target is loaded.

    Example:
        >>> @router.post("/events")
        >>> def create_event(user: User = Depends(require(Action.CREATE, ResourceKind.EVENT))):
        ...     ...
    """
    def role_checker(user: User = Depends(get_current_user)) -> User:
        authorize(principal_for(user), action, kind, owns=True)
        return user

    return role_checker
