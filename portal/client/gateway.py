"""Typed access to the portal API for front ends.

Every call carries the session's bearer token. A 401 from any endpoint
forces the session to Expired/Anonymous before ``Unauthorized`` is raised,
so the view layer only has to re-render.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Type, TypeVar, Union

import requests
from pydantic import BaseModel

from portal.client.session import SessionManager
from portal.core.errors import NetworkError, ServerError, Unauthorized, error_for_status
from portal.core.logging import get_logger
from portal.domain.school import (
    Announcement,
    AnnouncementScope,
    Assignment,
    ClassGroup,
    Event,
    MediaItem,
    MediaKind,
    Submission,
    UploadResult,
)
from portal.domain.user import Role, User

logger = get_logger(__name__, {"component": "client"})

ModelT = TypeVar("ModelT", bound=BaseModel)
FileArg = Tuple[str, Union[bytes, BinaryIO]]


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class DataGateway:
    """One method per API operation; responses come back as domain models."""

    def __init__(self, session: SessionManager, http=None, timeout: Optional[float] = None):
        self.session = session
        self.http = http or session.http
        self.timeout = timeout or session.timeout

    def request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict] = None,
        data: Optional[Dict] = None,
        files: Optional[Dict[str, FileArg]] = None,
        params: Optional[Dict] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises:
            Unauthorized: On 401, after expiring the session
            NetworkError: If the API cannot be reached
            PortalError: The error class matching any other failure status
        """
        url = f"{self.session.api_url}{endpoint}"
        kwargs: Dict[str, Any] = {"headers": self.session.auth_headers(), "timeout": self.timeout}
        if json is not None:
            kwargs["json"] = _jsonable(json)
        if data:
            kwargs["data"] = _jsonable(data)
        if files:
            kwargs["files"] = files
        if params:
            kwargs["params"] = _jsonable(params)

        try:
            response = self.http.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"{method} {endpoint} unreachable: {e}")
            raise NetworkError(f"Network error: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        status_code = response.status_code
        message = body.get("error") if isinstance(body, dict) else None

        if status_code == 401:
            logger.info(f"{method} {endpoint} rejected the session token")
            self.session.expire()
            raise Unauthorized(message)

        if not 200 <= status_code < 300:
            logger.debug(f"{method} {endpoint} -> {status_code}: {message}")
            raise error_for_status(status_code, message)

        if body is None:
            raise ServerError("Malformed response from server")
        return body

    def _one(self, model: Type[ModelT], *args, **kwargs) -> ModelT:
        return model(**self.request(*args, **kwargs))

    def _many(self, model: Type[ModelT], *args, **kwargs) -> List[ModelT]:
        return [model(**item) for item in self.request(*args, **kwargs)]

    # -----------------
    # ACCOUNT
    # -----------------

    def change_password(self, current_password: str, new_password: str) -> None:
        self.request(
            "POST", "/change-password",
            json={"current_password": current_password, "new_password": new_password},
        )

    # -----------------
    # USERS
    # -----------------

    def get_users(self, role: Optional[Role] = None) -> List[User]:
        return self._many(User, "GET", "/users", params={"role": role})

    def get_students(self) -> List[User]:
        return self._many(User, "GET", "/users/students")

    def create_user(self, name: str, email: str, password: str, role: Role = Role.STUDENT) -> User:
        return self._one(
            User, "POST", "/users",
            json={"name": name, "email": email, "password": password, "role": role},
        )

    def update_user(self, user_id: str, **changes) -> User:
        return self._one(User, "PUT", f"/users/{user_id}", json=changes)

    def delete_user(self, user_id: str) -> None:
        self.request("DELETE", f"/users/{user_id}")

    # -----------------
    # CLASSES
    # -----------------

    def get_classes(self) -> List[ClassGroup]:
        return self._many(ClassGroup, "GET", "/classes")

    def get_class(self, class_id: str) -> ClassGroup:
        return self._one(ClassGroup, "GET", f"/classes/{class_id}")

    def create_class(self, name: str) -> ClassGroup:
        return self._one(ClassGroup, "POST", "/classes", json={"name": name})

    def update_class(self, class_id: str, name: str) -> ClassGroup:
        return self._one(ClassGroup, "PUT", f"/classes/{class_id}", json={"name": name})

    def delete_class(self, class_id: str) -> None:
        self.request("DELETE", f"/classes/{class_id}")

    def add_student_to_class(self, class_id: str, student_id: str) -> ClassGroup:
        return self._one(ClassGroup, "POST", f"/classes/{class_id}/students/{student_id}")

    def remove_student_from_class(self, class_id: str, student_id: str) -> ClassGroup:
        return self._one(ClassGroup, "DELETE", f"/classes/{class_id}/students/{student_id}")

    # -----------------
    # ANNOUNCEMENTS
    # -----------------

    def get_announcements(self, class_id: Optional[str] = None) -> List[Announcement]:
        return self._many(Announcement, "GET", "/announcements", params={"class_id": class_id})

    def create_announcement(
        self,
        title: str,
        content: str,
        scope: AnnouncementScope = AnnouncementScope.GLOBAL,
        class_id: Optional[str] = None,
    ) -> Announcement:
        return self._one(
            Announcement, "POST", "/announcements",
            json={"title": title, "content": content, "scope": scope, "class_id": class_id},
        )

    def update_announcement(self, announcement_id: str, **changes) -> Announcement:
        return self._one(Announcement, "PUT", f"/announcements/{announcement_id}", json=changes)

    def delete_announcement(self, announcement_id: str) -> None:
        self.request("DELETE", f"/announcements/{announcement_id}")

    # -----------------
    # ASSIGNMENTS
    # -----------------

    def get_assignments(self, class_id: Optional[str] = None) -> List[Assignment]:
        return self._many(Assignment, "GET", "/assignments", params={"class_id": class_id})

    def get_assignment(self, assignment_id: str) -> Assignment:
        return self._one(Assignment, "GET", f"/assignments/{assignment_id}")

    def create_assignment(
        self, title: str, description: str, class_id: str, due_date: datetime,
    ) -> Assignment:
        return self._one(
            Assignment, "POST", "/assignments",
            json={"title": title, "description": description, "class_id": class_id, "due_date": due_date},
        )

    def update_assignment(self, assignment_id: str, **changes) -> Assignment:
        return self._one(Assignment, "PUT", f"/assignments/{assignment_id}", json=changes)

    def delete_assignment(self, assignment_id: str) -> None:
        self.request("DELETE", f"/assignments/{assignment_id}")

    def submit_assignment(
        self, assignment_id: str, text: Optional[str] = None, file: Optional[FileArg] = None,
    ) -> Submission:
        """Multipart hand-in; ``file`` is a ``(filename, bytes or stream)`` pair."""
        return self._one(
            Submission, "POST", f"/assignments/{assignment_id}/submit",
            data={"text": text} if text else None,
            files={"file": file} if file else None,
        )

    def get_submissions(self, assignment_id: str) -> List[Submission]:
        return self._many(Submission, "GET", f"/assignments/{assignment_id}/submissions")

    def grade_submission(self, assignment_id: str, submission_id: str, grade: float) -> Submission:
        return self._one(
            Submission, "PUT", f"/assignments/{assignment_id}/submissions/{submission_id}/grade",
            json={"grade": grade},
        )

    # -----------------
    # EVENTS
    # -----------------

    def get_events(self) -> List[Event]:
        return self._many(Event, "GET", "/events")

    def create_event(self, title: str, description: str, when: datetime) -> Event:
        return self._one(
            Event, "POST", "/events",
            json={"title": title, "description": description, "date": when},
        )

    def update_event(self, event_id: str, **changes) -> Event:
        return self._one(Event, "PUT", f"/events/{event_id}", json=changes)

    def delete_event(self, event_id: str) -> None:
        self.request("DELETE", f"/events/{event_id}")

    # -----------------
    # MEDIA
    # -----------------

    def get_media(self) -> List[MediaItem]:
        return self._many(MediaItem, "GET", "/media")

    def create_media(self, url: str, title: str = "Untitled", kind: MediaKind = MediaKind.FILE) -> MediaItem:
        return self._one(MediaItem, "POST", "/media", json={"title": title, "url": url, "kind": kind})

    def delete_media(self, media_id: str) -> None:
        self.request("DELETE", f"/media/{media_id}")

    def upload_file(self, file: FileArg) -> UploadResult:
        return self._one(UploadResult, "POST", "/upload", files={"file": file})
