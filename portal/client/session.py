"""Client-side session state.

``SessionManager`` owns the bearer token and the signed-in user for one
front end. Its states follow::

    Anonymous -> Authenticating -> Authenticated -> (Expired | LoggedOut) -> Anonymous

Any token failure (malformed, expired, rejected by the server) clears the
stored token and returns to Anonymous.
"""
import json
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

import jwt
import requests

from portal.core.errors import InvalidCredentials, NetworkError, PortalError, error_for_status
from portal.core.logging import get_logger
from portal.domain.user import Role, User

logger = get_logger(__name__, {"component": "client"})


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    LOGGED_OUT = "logged_out"


class TokenStore(Protocol):
    def load(self) -> Optional[str]: ...

    def save(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    """Keeps the token for the lifetime of the process."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def load(self) -> Optional[str]:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore:
    """Persists the token in a small JSON file so it survives restarts."""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[str]:
        try:
            return json.loads(self.path.read_text(encoding="utf-8")).get("token")
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable token file {self.path}: {e}")
            return None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


StateListener = Callable[[SessionState], None]


def token_is_expired(token: str) -> bool:
    """Check expiry locally; the signature is verified by the server.

    Malformed tokens count as expired.
    """
    try:
        jwt.decode(token, options={"verify_signature": False, "verify_exp": True})
    except jwt.ExpiredSignatureError:
        return True
    except jwt.InvalidTokenError:
        return True
    return False


class SessionManager:
    """Holds the current user and token and exposes role predicates.

    Example:
        >>> session = SessionManager(requests.Session(), "http://127.0.0.1:10000")
        >>> session.login("teacher@school.org", "123456")
        >>> session.is_teacher
        True
    """

    def __init__(
        self,
        http,
        base_url: str,
        token_store: Optional[TokenStore] = None,
        api_prefix: str = "/api",
        timeout: float = 30.0,
    ):
        self.http = http
        self.api_url = f"{base_url.rstrip('/')}{api_prefix}"
        self.token_store = token_store or MemoryTokenStore()
        self.timeout = timeout
        self.token: Optional[str] = self.token_store.load()
        self.user: Optional[User] = None
        self.state = SessionState.ANONYMOUS
        self._listeners: List[StateListener] = []

    # -----------------
    # STATE
    # -----------------

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _transition(self, state: SessionState) -> None:
        if state is self.state:
            return
        logger.debug(f"Session {self.state.value} -> {state.value}")
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def _clear(self, via: SessionState, forget: bool = True) -> None:
        """Drop the in-memory identity; ``forget`` also wipes the stored token."""
        self.token = None
        self.user = None
        if forget:
            self.token_store.clear()
        self._transition(via)
        self._transition(SessionState.ANONYMOUS)

    def _sign_in(self, data: Dict) -> User:
        self.token = data["token"]
        self.user = User(**data["user"])
        self.token_store.save(self.token)
        self._transition(SessionState.AUTHENTICATED)
        logger.info(f"Signed in as {self.user.email}", extra={"user_id": self.user.id})
        return self.user

    def _post(self, endpoint: str, payload: Dict):
        try:
            return self.http.request(
                "POST", f"{self.api_url}{endpoint}", json=payload, timeout=self.timeout,
            )
        except requests.RequestException as e:
            self._clear(SessionState.ANONYMOUS)
            raise NetworkError(f"Network error: {e}") from e

    # -----------------
    # OPERATIONS
    # -----------------

    def login(self, email: str, password: str) -> User:
        """Sign in with email and password.

        Raises:
            InvalidCredentials: If the server rejects the credentials
            NetworkError: If the API cannot be reached
        """
        self._transition(SessionState.AUTHENTICATING)
        response = self._post("/login", {"email": email, "password": password})
        data = _json(response)

        if _ok(response):
            return self._sign_in(data)

        self._clear(SessionState.ANONYMOUS)
        logger.info(f"Login refused for {email}")
        if response.status_code == 401:
            raise InvalidCredentials(data.get("error"))
        raise error_for_status(response.status_code, data.get("error"))

    def register(self, name: str, email: str, password: str, role: Role = Role.STUDENT) -> User:
        self._transition(SessionState.AUTHENTICATING)
        response = self._post(
            "/register",
            {"name": name, "email": email, "password": password, "role": Role(role).value},
        )
        data = _json(response)

        if _ok(response):
            return self._sign_in(data)

        self._clear(SessionState.ANONYMOUS)
        raise error_for_status(response.status_code, data.get("error"))

    def validate(self) -> bool:
        """Re-establish the session from the stored token.

        A token the server rejects is cleared. When the API is unreachable
        or failing the session stays Anonymous but the stored token is
        kept, so a later ``validate()`` can retry it.

        Returns:
            True when the server confirmed the token, False otherwise
        """
        self.token = self.token or self.token_store.load()
        if not self.token:
            self._transition(SessionState.ANONYMOUS)
            return False

        if token_is_expired(self.token):
            logger.info("Stored token expired")
            self.expire()
            return False

        self._transition(SessionState.AUTHENTICATING)
        try:
            response = self.http.request(
                "GET", f"{self.api_url}/validate-token",
                headers=self.auth_headers(), timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Token validation failed: {e}")
            self._clear(SessionState.ANONYMOUS, forget=False)
            return False

        if response.status_code >= 500:
            logger.warning(f"Token validation failed ({response.status_code})")
            self._clear(SessionState.ANONYMOUS, forget=False)
            return False

        if not _ok(response):
            logger.info(f"Token rejected by server ({response.status_code})")
            self.logout()
            return False

        self.user = User(**_json(response))
        self._transition(SessionState.AUTHENTICATED)
        return True

    def logout(self) -> None:
        """Forget token and user. Safe to call in any state."""
        was_signed_in = self.token is not None or self.user is not None
        self._clear(SessionState.LOGGED_OUT if was_signed_in else SessionState.ANONYMOUS)

    def expire(self) -> None:
        """Forced logout after the token stopped being accepted."""
        self._clear(SessionState.EXPIRED)

    # -----------------
    # PREDICATES
    # -----------------

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED and self.user is not None

    @property
    def role(self) -> Optional[Role]:
        return self.user.role if self.is_authenticated else None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        """Teachers and admins."""
        return self.role in (Role.TEACHER, Role.ADMIN)

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT

    def auth_headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}


def _ok(response) -> bool:
    return 200 <= response.status_code < 300


def _json(response) -> Dict:
    try:
        data = response.json()
    except ValueError:
        if _ok(response):
            raise PortalError("Malformed response from server")
        return {}
    return data if isinstance(data, dict) else {"items": data}
