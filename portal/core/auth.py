"""Authentication for the school portal API.

Implements bcrypt password hashing and JWT bearer tokens carrying the user's
identity and role. Tokens are not stored server-side: expiry is the only way
a token stops working.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from portal.core.config import DEV_SECRET_KEY, Settings, settings
from portal.core.errors import Unauthorized, ValidationError
from portal.core.logging import get_logger
from portal.core.policy import ANONYMOUS, Principal
from portal.domain.user import TokenData, User

logger = get_logger(__name__)

# JWT Configuration from settings
SECRET_KEY = settings.jwt_secret_key
ALGORITHM = settings.jwt_algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes
BCRYPT_MAX_BYTES = 72

# Production security check
if settings.environment == "production":
    if SECRET_KEY == DEV_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY must be set to a secure value in production!")
    if len(SECRET_KEY) < 32:
        logger.warning("JWT_SECRET_KEY should be at least 32 characters for security")

# Missing headers are reported as 401 by get_current_user, not by FastAPI
security = HTTPBearer(auto_error=False)


def hash_password(password: str, config: Optional[Settings] = None) -> str:
    """Hash a password with bcrypt using the cost factor of ``config``.

    Raises:
        ValidationError: If the password exceeds bcrypt's 72 byte input limit
    """
    raw = password.encode("utf-8")
    if len(raw) > BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=(config or settings).bcrypt_rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Over-long input or a corrupt hash never matches
        return False


def create_access_token(
    user: User,
    expires_delta: Optional[timedelta] = None,
    config: Optional[Settings] = None,
) -> str:
    """Create a signed JWT for a user.

    Args:
        user: User the token is issued to
        expires_delta: Token lifetime (default: the configured lifetime)
        config: Settings holding the signing key (default: environment settings)

    Returns:
        Encoded JWT token

    Example:
        >>> token = create_access_token(user)
        >>> decode_token(token).role
        <Role.TEACHER: 'teacher'>
    """
    config = config or settings
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value,
        "exp": expire,
        "iat": now,
    }

    token = jwt.encode(payload, config.jwt_secret_key, algorithm=config.jwt_algorithm)

    logger.info(
        f"Access token issued for {user.email}",
        extra={"user_id": user.id, "role": user.role.value}
    )

    return token


def decode_token(token: str, config: Optional[Settings] = None) -> TokenData:
    """Decode and validate a JWT.

    Raises:
        Unauthorized: If the token is malformed, expired or badly signed
    """
    config = config or settings
    try:
        payload = jwt.decode(token, config.jwt_secret_key, algorithms=[config.jwt_algorithm])

        return TokenData(
            sub=payload.get("sub"),
            email=payload.get("email"),
            role=payload.get("role"),
            exp=datetime.fromtimestamp(payload.get("exp"), tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc) if payload.get("iat") else None,
        )

    except jwt.ExpiredSignatureError:
        logger.info("Expired token presented")
        raise Unauthorized("Token has expired")

    except (jwt.InvalidTokenError, ValueError, TypeError) as e:
        logger.warning(f"Invalid token presented: {e}")
        raise Unauthorized("Invalid authentication token")


def authenticate_user(users, email: str, password: str) -> Optional[User]:
    """Check credentials against the credential store.

    Args:
        users: UserService used to look up the stored hash
        email: User email
        password: Plain password

    Returns:
        The public User on success, None otherwise
    """
    record = users.get_record_by_email(email)

    if record is None:
        logger.warning(f"Login attempt for unknown email: {email}")
        return None

    if not verify_password(password, record.password_hash):
        logger.warning(f"Invalid password for user: {email}", extra={"user_id": record.id})
        return None

    logger.info(f"User authenticated: {email}", extra={"user_id": record.id})
    return User(**record.model_dump(exclude={"password_hash"}))


def _user_from_token(request: Request, token: str) -> User:
    token_data = decode_token(token, request.app.state.settings)
    user = request.app.state.services.users.find(token_data.sub)
    if user is None:
        logger.info("Token for a deleted user", extra={"user_id": token_data.sub})
        raise Unauthorized("User not found")
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """FastAPI dependency returning the authenticated user.

    The user is reloaded from the store so role and class changes apply
    immediately. Raises Unauthorized (401) without a valid token.
    """
    if credentials is None:
        raise Unauthorized()
    return _user_from_token(request, credentials.credentials)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """FastAPI dependency for public endpoints.

    Returns None for anonymous callers; a token that is present but invalid
    is still rejected with 401 so the client drops it.
    """
    if credentials is None:
        return None
    return _user_from_token(request, credentials.credentials)


def principal_for(user: Optional[User]) -> Principal:
    if user is None:
        return ANONYMOUS
    return Principal(user_id=user.id, role=user.role)
