"""Assignment endpoints, submissions and grading."""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from portal.api.deps import get_services, require
from portal.core.auth import principal_for
from portal.core.logging import LogTimer, get_logger
from portal.core.policy import Action, ResourceKind, authorize
from portal.domain.school import (
    Assignment,
    AssignmentCreate,
    AssignmentUpdate,
    GradeRequest,
    Submission,
)
from portal.domain.user import User
from portal.services.registry import PortalServices

logger = get_logger(__name__)
router = APIRouter(prefix="/assignments", tags=["Assignments"])


@router.get("", response_model=List[Assignment])
def list_assignments(
    class_id: Optional[str] = None,
    user: User = Depends(require(Action.READ, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    """Assignments of the caller's classes (all for admins), ordered by due date."""
    with LogTimer(logger, "list_assignments"):
        return services.assignments.list_for(user, class_id=class_id)


@router.post("", response_model=Assignment, status_code=status.HTTP_201_CREATED)
def create_assignment(
    req: AssignmentCreate,
    user: User = Depends(require(Action.CREATE, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    return services.assignments.create(req, user)


@router.get("/{assignment_id}", response_model=Assignment)
def get_assignment(
    assignment_id: str,
    user: User = Depends(require(Action.READ, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    assignment = services.assignments.get(assignment_id)
    authorize(
        principal_for(user), Action.READ, ResourceKind.ASSIGNMENT,
        owns=services.assignments.can_read(assignment, user),
    )
    return services.assignments.visible_to(assignment, user)


@router.put("/{assignment_id}", response_model=Assignment)
def update_assignment(
    assignment_id: str,
    req: AssignmentUpdate,
    _: User = Depends(require(Action.UPDATE, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    return services.assignments.update(assignment_id, req)


@router.delete("/{assignment_id}")
def delete_assignment(
    assignment_id: str,
    _: User = Depends(require(Action.DELETE, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    services.assignments.delete(assignment_id)
    return {"message": "Assignment deleted"}


@router.post("/{assignment_id}/submit", response_model=Submission, status_code=status.HTTP_201_CREATED)
def submit_assignment(
    assignment_id: str,
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    user: User = Depends(require(Action.SUBMIT, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    """Hand in text and/or a file (multipart). Students of the assignment's class only."""
    assignment = services.assignments.get(assignment_id)
    authorize(
        principal_for(user), Action.SUBMIT, ResourceKind.ASSIGNMENT,
        owns=services.assignments.can_read(assignment, user),
    )

    has_file = file is not None and bool(file.filename)
    return services.assignments.submit(
        assignment_id,
        user,
        text=text,
        filename=file.filename if has_file else None,
        stream=file.file if has_file else None,
    )


@router.get("/{assignment_id}/submissions", response_model=List[Submission])
def list_submissions(
    assignment_id: str,
    user: User = Depends(require(Action.VIEW_SUBMISSIONS, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    """Submissions of an assignment. Its author and admins only."""
    assignment = services.assignments.get(assignment_id)
    authorize(
        principal_for(user), Action.VIEW_SUBMISSIONS, ResourceKind.ASSIGNMENT,
        owns=services.assignments.owns(assignment, user),
    )
    return assignment.submissions


@router.put("/{assignment_id}/submissions/{submission_id}/grade", response_model=Submission)
def grade_submission(
    assignment_id: str,
    submission_id: str,
    req: GradeRequest,
    user: User = Depends(require(Action.GRADE, ResourceKind.ASSIGNMENT)),
    services: PortalServices = Depends(get_services),
):
    assignment = services.assignments.get(assignment_id)
    authorize(
        principal_for(user), Action.GRADE, ResourceKind.ASSIGNMENT,
        owns=services.assignments.owns(assignment, user),
    )
    return services.assignments.grade(assignment_id, submission_id, req.grade, user)
