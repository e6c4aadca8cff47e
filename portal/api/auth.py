"""Login, registration and token validation endpoints."""
from fastapi import APIRouter, Depends, status

from portal.api.deps import get_services, get_settings
from portal.core.auth import authenticate_user, create_access_token, get_current_user
from portal.core.config import Settings
from portal.core.errors import Forbidden, InvalidCredentials
from portal.core.logging import LogTimer, get_logger
from portal.domain.user import AuthResponse, LoginRequest, PasswordChange, RegisterRequest, Role, User
from portal.services.registry import PortalServices

logger = get_logger(__name__)
router = APIRouter(tags=["Authentication"])


def _auth_response(user: User, config: Settings) -> AuthResponse:
    return AuthResponse(
        token=create_access_token(user, config=config),
        token_type="bearer",
        expires_in=config.access_token_expire_minutes * 60,
        user=user,
    )


@router.post("/login", response_model=AuthResponse)
def login(
    req: LoginRequest,
    services: PortalServices = Depends(get_services),
    config: Settings = Depends(get_settings),
):
    """Authenticate a user and return a bearer token.

    Example:
        POST /api/login
        {"email": "teacher@school.org", "password": "123456"}
    """
    with LogTimer(logger, "user_authentication"):
        user = authenticate_user(services.users, req.email, req.password)

        if not user:
            raise InvalidCredentials()

        return _auth_response(user, config)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    req: RegisterRequest,
    services: PortalServices = Depends(get_services),
    config: Settings = Depends(get_settings),
):
    """Create an account and sign it in.

    Self-registration as admin is refused unless ALLOW_ADMIN_REGISTRATION is set.
    """
    if req.role is Role.ADMIN and not config.allow_admin_registration:
        logger.warning(f"Refused admin self-registration for {req.email}")
        raise Forbidden("Administrator accounts cannot be self-registered")

    user = services.users.create(req)
    return _auth_response(user, config)


@router.get("/validate-token", response_model=User)
def validate_token(current_user: User = Depends(get_current_user)):
    """Return the user behind a valid bearer token (401 otherwise)."""
    return current_user


@router.post("/change-password")
def change_password(
    req: PasswordChange,
    current_user: User = Depends(get_current_user),
    services: PortalServices = Depends(get_services),
):
    services.users.change_password(current_user.id, req.current_password, req.new_password)
    return {"message": "Password updated"}
