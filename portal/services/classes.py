"""Class groups and their rosters."""
from typing import Dict, List, Optional

from portal.core.errors import NotFound, ValidationError
from portal.core.logging import get_logger
from portal.domain.school import ClassCreate, ClassGroup
from portal.domain.user import Role, User
from portal.infrastructure.store import CLASSES, USERS
from portal.services.base import CollectionService, utcnow
from portal.services.users import UserService

logger = get_logger(__name__)


class ClassService(CollectionService[ClassGroup]):
    collection = CLASSES
    model = ClassGroup
    label = "Class"
    default_sort = [("created_at", 1)]

    def __init__(self, store, users: UserService):
        super().__init__(store)
        self.users = users

    def create(self, payload: ClassCreate, creator: User) -> ClassGroup:
        """Create a class; its creator becomes its first teacher."""
        created = self._insert({
            "name": payload.name.strip(),
            "teachers": [creator.id],
            "students": [],
            "created_at": utcnow(),
        })
        self.users.join_class(creator.id, created.id)
        return created

    def list_for(self, user: User) -> List[ClassGroup]:
        """Classes where the user is a teacher or a student."""
        merged: Dict[str, ClassGroup] = {}
        for field in ("teachers", "students"):
            for group in self.list({field: user.id}):
                merged[group.id] = group
        return sorted(merged.values(), key=lambda g: (g.created_at is not None, g.created_at))

    def member_class_ids(self, user: Optional[User]) -> List[str]:
        if user is None:
            return []
        return [group.id for group in self.list_for(user)]

    def is_member(self, class_id: str, user: Optional[User]) -> bool:
        group = self.find(class_id)
        return group is not None and user is not None and group.has_member(user.id)

    def delete(self, class_id: str) -> None:
        """Delete a class and remove it from its members' class lists.

        Announcements and assignments that reference the class are left in
        place and keep pointing at the deleted id.
        """
        super().delete(class_id)
        self.store.pull_everywhere(USERS, "classes", class_id)

    def add_student(self, class_id: str, student_id: str) -> ClassGroup:
        self.get(class_id)
        student = self.users.find(student_id)
        if student is None:
            raise NotFound("Student not found")
        if student.role is not Role.STUDENT:
            raise ValidationError("Only students can be added to a class roster")

        self.store.add_to_set(CLASSES, class_id, "students", student_id)
        self.users.join_class(student_id, class_id)
        logger.info("Student added to class", extra={"resource_id": class_id, "user_id": student_id})
        return self.get(class_id)

    def remove_student(self, class_id: str, student_id: str) -> ClassGroup:
        group = self.get(class_id)
        if student_id not in group.students:
            raise NotFound("Student is not in this class")

        self.store.pull(CLASSES, class_id, "students", student_id)
        self.users.leave_class(student_id, class_id)
        logger.info("Student removed from class", extra={"resource_id": class_id, "user_id": student_id})
        return self.get(class_id)
