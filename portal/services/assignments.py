"""Assignments and the submissions students hand in."""
from typing import BinaryIO, List, Optional

from portal.core.errors import NotFound, ValidationError
from portal.core.logging import get_logger
from portal.domain.school import Assignment, AssignmentCreate, Submission
from portal.domain.user import Role, User
from portal.infrastructure.store import ASSIGNMENTS, new_id
from portal.infrastructure.uploads import UploadStorage
from portal.services.base import CollectionService, utcnow
from portal.services.classes import ClassService

logger = get_logger(__name__)


class AssignmentService(CollectionService[Assignment]):
    collection = ASSIGNMENTS
    model = Assignment
    label = "Assignment"
    default_sort = [("due_date", 1)]

    def __init__(self, store, classes: ClassService, uploads: UploadStorage):
        super().__init__(store)
        self.classes = classes
        self.uploads = uploads

    def create(self, payload: AssignmentCreate, teacher: User) -> Assignment:
        if self.classes.find(payload.class_id) is None:
            raise ValidationError("Unknown class for assignment")

        return self._insert({
            "title": payload.title,
            "description": payload.description,
            "class_id": payload.class_id,
            "teacher": teacher.id,
            "due_date": payload.due_date,
            "created_at": utcnow(),
            "submissions": [],
        })

    def can_read(self, assignment: Assignment, user: User) -> bool:
        return user.role is Role.ADMIN or self.classes.is_member(assignment.class_id, user)

    def owns(self, assignment: Assignment, user: User) -> bool:
        """True when ``user`` authored the assignment."""
        return assignment.teacher == user.id

    def visible_to(self, assignment: Assignment, user: User) -> Assignment:
        """Students only get their own submissions back."""
        if user.role is not Role.STUDENT:
            return assignment
        own = [s for s in assignment.submissions if s.student == user.id]
        return assignment.model_copy(update={"submissions": own})

    def list_for(self, user: User, class_id: Optional[str] = None) -> List[Assignment]:
        """Assignments of the user's classes (all of them for admins), by due date."""
        if user.role is Role.ADMIN:
            items = self.list({"class_id": class_id} if class_id else None)
        else:
            member_of = self.classes.member_class_ids(user)
            if class_id is not None:
                member_of = [c for c in member_of if c == class_id]
            items = self.list({"class_id": {"$in": member_of}}) if member_of else []
        return [self.visible_to(a, user) for a in items]

    def submit(
        self,
        assignment_id: str,
        student: User,
        text: Optional[str] = None,
        filename: Optional[str] = None,
        stream: Optional[BinaryIO] = None,
    ) -> Submission:
        """Record a submission carrying text, a file, or both.

        Raises:
            ValidationError: If neither text nor file is provided
            NotFound: If the assignment does not exist
        """
        text = (text or "").strip() or None
        has_file = stream is not None and bool(filename)
        if text is None and not has_file:
            raise ValidationError("A submission needs text or a file")

        self.get(assignment_id)

        file_url = None
        if has_file:
            file_url, _ = self.uploads.save(filename, stream)

        submission = Submission(
            id=new_id(),
            student=student.id,
            text=text,
            file_url=file_url,
            submitted_at=utcnow(),
        )
        if not self.store.push(ASSIGNMENTS, assignment_id, "submissions", submission.model_dump()):
            raise NotFound("Assignment not found")

        logger.info(
            "Assignment submitted",
            extra={"resource_id": assignment_id, "user_id": student.id}
        )
        return submission

    def grade(self, assignment_id: str, submission_id: str, grade: float, grader: User) -> Submission:
        """Grade one submission in place; other submissions are left as stored.

        Raises:
            NotFound: If the assignment or the submission does not exist
        """
        self.get(assignment_id)
        updated = self.store.update_element(
            ASSIGNMENTS, assignment_id, "submissions", submission_id,
            {"grade": grade, "graded_by": grader.id, "graded_at": utcnow()},
        )
        if updated is None:
            raise NotFound("Submission not found")

        logger.info("Submission graded", extra={"resource_id": assignment_id, "user_id": grader.id})
        return Submission(**updated)
