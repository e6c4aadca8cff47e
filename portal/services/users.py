"""Credential store: user accounts, password hashes and class memberships."""
from typing import List, Optional

from portal.core.auth import hash_password, verify_password
from portal.core.config import Settings
from portal.core.errors import Conflict, ValidationError
from portal.core.logging import get_logger
from portal.domain.user import RegisterRequest, Role, User, UserRecord, UserUpdate
from portal.infrastructure.store import CLASSES, USERS, DuplicateKeyError, to_model_dict
from portal.services.base import CollectionService, plain, utcnow

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService(CollectionService[User]):
    collection = USERS
    model = User
    label = "User"
    default_sort = [("created_at", 1)]

    def __init__(self, store, config: Optional[Settings] = None):
        super().__init__(store)
        self.config = config

    def create(self, payload: RegisterRequest) -> User:
        """Create an account; the email must not be taken.

        Raises:
            Conflict: If the email already exists
        """
        doc = {
            "name": payload.name,
            "email": normalize_email(payload.email),
            "password_hash": hash_password(payload.password, self.config),
            "role": payload.role.value,
            "classes": [],
            "created_at": utcnow(),
        }
        try:
            return self._insert(doc)
        except DuplicateKeyError:
            raise Conflict("Email already exists")

    def get_record_by_email(self, email: str) -> Optional[UserRecord]:
        doc = self.store.find_one(USERS, {"email": normalize_email(email)})
        return UserRecord(**to_model_dict(doc)) if doc is not None else None

    def list_by_role(self, role: Role) -> List[User]:
        return self.list({"role": role.value})

    def update(self, user_id: str, changes: UserUpdate) -> User:
        values = plain(changes.model_dump(exclude_unset=True, exclude_none=True))
        password = values.pop("password", None)
        if "email" in values:
            values["email"] = normalize_email(values["email"])
        if password is not None:
            values["password_hash"] = hash_password(password, self.config)

        self.get(user_id)
        try:
            doc = self.store.update(USERS, user_id, values) if values else self.store.get(USERS, user_id)
        except DuplicateKeyError:
            raise Conflict("Email already exists")
        logger.info("Updated user", extra={"resource_id": user_id, "collection": USERS})
        return self._to_model(doc)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Replace a user's password after checking the current one.

        Raises:
            ValidationError: If the current password does not match
        """
        record = self.store.get(USERS, user_id)
        if record is None or not verify_password(current_password, record["password_hash"]):
            raise ValidationError("Current password is incorrect")
        self.store.update(USERS, user_id, {"password_hash": hash_password(new_password, self.config)})
        logger.info("Password changed", extra={"user_id": user_id})

    def delete(self, user_id: str) -> None:
        """Delete a user and drop it from every class roster."""
        super().delete(user_id)
        self.store.pull_everywhere(CLASSES, "teachers", user_id)
        self.store.pull_everywhere(CLASSES, "students", user_id)

    def join_class(self, user_id: str, class_id: str) -> bool:
        return self.store.add_to_set(USERS, user_id, "classes", class_id)

    def leave_class(self, user_id: str, class_id: str) -> bool:
        return self.store.pull(USERS, user_id, "classes", class_id)
