"""Page state for the portal front end.

The controller is single-threaded and event driven: every navigation or form
submission reads the session, decides which partition and affordances are
visible, then refetches the page's content. A failed fetch leaves the
previous content in place and queues an error notification. ``Unauthorized``
anywhere logs the user out and drops back to the guest home page.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from portal.client.gateway import DataGateway, FileArg
from portal.client.session import SessionManager, SessionState
from portal.core.errors import Forbidden, NotFound, PortalError, Unauthorized
from portal.core.logging import get_logger
from portal.core.policy import Action, ResourceKind, Scope, scope_for
from portal.domain.school import AnnouncementScope, MediaKind
from portal.domain.user import Role

logger = get_logger(__name__, {"component": "client"})


class Page(str, Enum):
    HOME = "home"
    ANNOUNCEMENTS = "announcements"
    CLASSES = "classes"
    ASSIGNMENTS = "assignments"
    EVENTS = "events"
    MEDIA = "media"
    ADMIN = "admin"
    SETTINGS = "settings"


class Partition(str, Enum):
    GUEST = "guest"
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class Affordance(str, Enum):
    LOGIN = "login"
    REGISTER = "register"
    LOGOUT = "logout"
    SETTINGS_LINK = "settings_link"
    ADMIN_LINK = "admin_link"
    ADD_ANNOUNCEMENT = "add_announcement"
    DELETE_ANNOUNCEMENT = "delete_announcement"
    ADD_CLASS = "add_class"
    DELETE_CLASS = "delete_class"
    MANAGE_STUDENTS = "manage_students"
    ADD_ASSIGNMENT = "add_assignment"
    DELETE_ASSIGNMENT = "delete_assignment"
    SUBMIT_ASSIGNMENT = "submit_assignment"
    VIEW_SUBMISSIONS = "view_submissions"
    GRADE_SUBMISSION = "grade_submission"
    ADD_EVENT = "add_event"
    DELETE_EVENT = "delete_event"
    ADD_MEDIA = "add_media"
    UPLOAD_FILE = "upload_file"
    DELETE_MEDIA = "delete_media"
    MANAGE_USERS = "manage_users"


class Level(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# Buttons shown when the role holds any scope for the pair
AFFORDANCE_RULES: Dict[Affordance, Tuple[Action, ResourceKind]] = {
    Affordance.ADMIN_LINK: (Action.READ, ResourceKind.USER),
    Affordance.MANAGE_USERS: (Action.CREATE, ResourceKind.USER),
    Affordance.ADD_ANNOUNCEMENT: (Action.CREATE, ResourceKind.ANNOUNCEMENT),
    Affordance.DELETE_ANNOUNCEMENT: (Action.DELETE, ResourceKind.ANNOUNCEMENT),
    Affordance.ADD_CLASS: (Action.CREATE, ResourceKind.CLASS),
    Affordance.DELETE_CLASS: (Action.DELETE, ResourceKind.CLASS),
    Affordance.MANAGE_STUDENTS: (Action.MANAGE_MEMBERS, ResourceKind.CLASS),
    Affordance.ADD_ASSIGNMENT: (Action.CREATE, ResourceKind.ASSIGNMENT),
    Affordance.DELETE_ASSIGNMENT: (Action.DELETE, ResourceKind.ASSIGNMENT),
    Affordance.SUBMIT_ASSIGNMENT: (Action.SUBMIT, ResourceKind.ASSIGNMENT),
    Affordance.VIEW_SUBMISSIONS: (Action.VIEW_SUBMISSIONS, ResourceKind.ASSIGNMENT),
    Affordance.GRADE_SUBMISSION: (Action.GRADE, ResourceKind.ASSIGNMENT),
    Affordance.ADD_EVENT: (Action.CREATE, ResourceKind.EVENT),
    Affordance.DELETE_EVENT: (Action.DELETE, ResourceKind.EVENT),
    Affordance.ADD_MEDIA: (Action.CREATE, ResourceKind.MEDIA),
    Affordance.UPLOAD_FILE: (Action.CREATE, ResourceKind.UPLOAD),
    Affordance.DELETE_MEDIA: (Action.DELETE, ResourceKind.MEDIA),
}

# Pages that need more than a guest; None means any signed-in user
RESTRICTED_PAGES: Dict[Page, Optional[Affordance]] = {
    Page.CLASSES: None,
    Page.ASSIGNMENTS: None,
    Page.SETTINGS: None,
    Page.ADMIN: Affordance.ADMIN_LINK,
}

HOME_ITEMS = 5


@dataclass
class Notification:
    message: str
    level: Level = Level.INFO
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ViewState:
    """Everything a renderer needs for one page."""
    page: Page
    partition: Partition
    affordances: FrozenSet[Affordance]
    content: Dict[str, Any]
    restricted: bool = False
    user_name: Optional[str] = None

    def can(self, affordance: Affordance) -> bool:
        return affordance in self.affordances


def partition_for(session: SessionManager) -> Partition:
    if not session.is_authenticated:
        return Partition.GUEST
    return Partition(session.role.value)


def affordances_for(session: SessionManager) -> FrozenSet[Affordance]:
    """Derive visible controls from the access policy table."""
    if not session.is_authenticated:
        return frozenset({Affordance.LOGIN, Affordance.REGISTER})

    role: Role = session.role
    granted = {Affordance.LOGOUT, Affordance.SETTINGS_LINK}
    for affordance, (action, kind) in AFFORDANCE_RULES.items():
        if scope_for(role, action, kind) is not Scope.DENY:
            granted.add(affordance)
    return frozenset(granted)


class ViewController:
    """Drives page loads and form handlers for one front end session."""

    def __init__(self, session: SessionManager, gateway: DataGateway):
        self.session = session
        self.gateway = gateway
        self.page = Page.HOME
        self._content: Dict[Page, Dict[str, Any]] = {}
        self._notifications: List[Notification] = []
        session.add_listener(self._on_session_change)

    # -----------------
    # STATE
    # -----------------

    def state(self) -> ViewState:
        affordances = affordances_for(self.session)
        return ViewState(
            page=self.page,
            partition=partition_for(self.session),
            affordances=affordances,
            content=dict(self._content.get(self.page, {})),
            restricted=not self._page_allowed(self.page, affordances),
            user_name=self.session.user.name if self.session.is_authenticated else None,
        )

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        self._notifications.append(Notification(message, level))

    def drain_notifications(self) -> List[Notification]:
        """Return queued notifications once; they are transient."""
        pending, self._notifications = self._notifications, []
        return pending

    def _on_session_change(self, state: SessionState) -> None:
        # Content fetched with another identity must not leak to the next one
        if state is SessionState.ANONYMOUS:
            self._content.clear()

    def _page_allowed(self, page: Page, affordances: FrozenSet[Affordance]) -> bool:
        if page not in RESTRICTED_PAGES:
            return True
        if not self.session.is_authenticated:
            return False
        needed = RESTRICTED_PAGES[page]
        return needed is None or needed in affordances

    # -----------------
    # NAVIGATION
    # -----------------

    def restore(self) -> ViewState:
        """Start-up: re-validate a stored token, then show the home page."""
        if self.session.token and not self.session.validate():
            if self.session.token_store.load():
                self.notify("Could not reach the portal to restore your session.", Level.WARNING)
            else:
                self.notify("Your session has ended. Please log in again.", Level.WARNING)
        return self.show_page(Page.HOME)

    def show_page(self, page: Page) -> ViewState:
        """Navigate to ``page`` and refetch its content.

        On failure the page and its previous content stay as they were.
        """
        page = Page(page)
        affordances = affordances_for(self.session)
        if not self._page_allowed(page, affordances):
            self.page = page
            self._content.pop(page, None)
            return self.state()

        try:
            content = self._fetch(page, affordances)
        except Unauthorized:
            self._reset_to_guest()
        except PortalError as e:
            logger.info(f"Loading {page.value} failed: {e.message}")
            self.notify(e.message, Level.ERROR)
        else:
            self.page = page
            self._content[page] = content
        return self.state()

    def refresh(self) -> ViewState:
        return self.show_page(self.page)

    def _fetch(self, page: Page, affordances: FrozenSet[Affordance]) -> Dict[str, Any]:
        gw = self.gateway
        teacher_tools = Affordance.ADD_ASSIGNMENT in affordances

        if page is Page.HOME:
            return {
                "announcements": gw.get_announcements()[:HOME_ITEMS],
                "events": gw.get_events()[:HOME_ITEMS],
            }
        if page is Page.ANNOUNCEMENTS:
            content = {"announcements": gw.get_announcements()}
            if Affordance.ADD_ANNOUNCEMENT in affordances:
                content["classes"] = gw.get_classes()
            return content
        if page is Page.CLASSES:
            content = {"classes": gw.get_classes()}
            if Affordance.MANAGE_STUDENTS in affordances:
                content["students"] = gw.get_students()
            return content
        if page is Page.ASSIGNMENTS:
            content = {"assignments": gw.get_assignments()}
            if teacher_tools:
                content["classes"] = gw.get_classes()
            # Keep an opened submissions panel across reloads
            opened = self._content.get(Page.ASSIGNMENTS, {}).get("submissions")
            if opened and Affordance.VIEW_SUBMISSIONS in affordances:
                assignment_id = opened["assignment_id"]
                try:
                    items = gw.get_submissions(assignment_id)
                except (NotFound, Forbidden) as e:
                    logger.info(f"Closing submissions panel for {assignment_id}: {e.message}")
                else:
                    content["submissions"] = {"assignment_id": assignment_id, "items": items}
            return content
        if page is Page.EVENTS:
            return {"events": gw.get_events()}
        if page is Page.MEDIA:
            return {"media": gw.get_media()}
        if page is Page.ADMIN:
            return {"users": gw.get_users(), "classes": gw.get_classes()}
        return {}

    def _reset_to_guest(self) -> None:
        if self.session.token or self.session.user:
            self.session.expire()
        self.notify("Your session has expired. Please log in again.", Level.WARNING)
        self.page = Page.HOME
        try:
            self._content[Page.HOME] = self._fetch(Page.HOME, affordances_for(self.session))
        except PortalError as e:
            self.notify(e.message, Level.ERROR)

    def _perform(self, operation: Callable[[], Any], success: str, reload: bool = True) -> bool:
        try:
            operation()
        except Unauthorized:
            self._reset_to_guest()
            return False
        except PortalError as e:
            logger.info(f"Operation failed: {e.message}")
            self.notify(e.message, Level.ERROR)
            return False

        self.notify(success, Level.SUCCESS)
        if reload:
            self.show_page(self.page)
        return True

    # -----------------
    # ACCOUNT FORMS
    # -----------------

    def login(self, email: str, password: str) -> bool:
        try:
            user = self.session.login(email, password)
        except PortalError as e:
            self.notify(e.message, Level.ERROR)
            return False
        self.notify(f"Welcome, {user.name}!", Level.SUCCESS)
        self.show_page(Page.HOME)
        return True

    def register(self, name: str, email: str, password: str, role: Role = Role.STUDENT) -> bool:
        try:
            user = self.session.register(name, email, password, role)
        except PortalError as e:
            self.notify(e.message, Level.ERROR)
            return False
        self.notify(f"Account created. Welcome, {user.name}!", Level.SUCCESS)
        self.show_page(Page.HOME)
        return True

    def logout(self) -> ViewState:
        self.session.logout()
        self.notify("Logged out", Level.INFO)
        return self.show_page(Page.HOME)

    def change_password(self, current_password: str, new_password: str) -> bool:
        return self._perform(
            lambda: self.gateway.change_password(current_password, new_password),
            "Password updated", reload=False,
        )

    # -----------------
    # CONTENT FORMS
    # -----------------

    def add_announcement(
        self,
        title: str,
        content: str,
        scope: AnnouncementScope = AnnouncementScope.GLOBAL,
        class_id: Optional[str] = None,
    ) -> bool:
        return self._perform(
            lambda: self.gateway.create_announcement(title, content, scope, class_id),
            "Announcement published",
        )

    def add_assignment(self, title: str, description: str, class_id: str, due_date: datetime) -> bool:
        return self._perform(
            lambda: self.gateway.create_assignment(title, description, class_id, due_date),
            "Assignment created",
        )

    def add_event(self, title: str, description: str, when: datetime) -> bool:
        return self._perform(
            lambda: self.gateway.create_event(title, description, when), "Event added",
        )

    def add_class(self, name: str) -> bool:
        return self._perform(lambda: self.gateway.create_class(name), "Class created")

    def add_media(
        self,
        title: str,
        url: Optional[str] = None,
        kind: MediaKind = MediaKind.FILE,
        file: Optional[FileArg] = None,
    ) -> bool:
        """Add a gallery entry from a URL or by uploading ``file`` first."""
        def create():
            if file is not None:
                uploaded = self.gateway.upload_file(file)
                return self.gateway.create_media(uploaded.url, title, uploaded.kind)
            return self.gateway.create_media(url or "", title, kind)

        return self._perform(create, "Media added")

    def add_user(self, name: str, email: str, password: str, role: Role = Role.STUDENT) -> bool:
        return self._perform(
            lambda: self.gateway.create_user(name, email, password, role), f"User {email} created",
        )

    def edit_user(self, user_id: str, **changes) -> bool:
        return self._perform(lambda: self.gateway.update_user(user_id, **changes), "User updated")

    def delete(self, kind: ResourceKind, resource_id: str) -> bool:
        deleters = {
            ResourceKind.ANNOUNCEMENT: self.gateway.delete_announcement,
            ResourceKind.ASSIGNMENT: self.gateway.delete_assignment,
            ResourceKind.CLASS: self.gateway.delete_class,
            ResourceKind.EVENT: self.gateway.delete_event,
            ResourceKind.MEDIA: self.gateway.delete_media,
            ResourceKind.USER: self.gateway.delete_user,
        }
        kind = ResourceKind(kind)
        if kind not in deleters:
            raise ValueError(f"Cannot delete {kind.value}")

        def remove():
            deleters[kind](resource_id)
            opened = self._content.get(Page.ASSIGNMENTS, {}).get("submissions")
            if kind is ResourceKind.ASSIGNMENT and opened and opened["assignment_id"] == resource_id:
                self.close_submissions()

        return self._perform(remove, f"{kind.value.capitalize()} deleted")

    # -----------------
    # ASSIGNMENT WORKFLOW
    # -----------------

    def submit_assignment(
        self, assignment_id: str, text: Optional[str] = None, file: Optional[FileArg] = None,
    ) -> bool:
        return self._perform(
            lambda: self.gateway.submit_assignment(assignment_id, text=text, file=file),
            "Assignment submitted",
        )

    def open_submissions(self, assignment_id: str) -> bool:
        """Load one assignment's submissions into the assignments page."""
        try:
            items = self.gateway.get_submissions(assignment_id)
        except Unauthorized:
            self._reset_to_guest()
            return False
        except PortalError as e:
            self.notify(e.message, Level.ERROR)
            return False

        content = self._content.setdefault(Page.ASSIGNMENTS, {})
        content["submissions"] = {"assignment_id": assignment_id, "items": items}
        return True

    def close_submissions(self) -> None:
        self._content.get(Page.ASSIGNMENTS, {}).pop("submissions", None)

    def grade_submission(self, assignment_id: str, submission_id: str, grade: float) -> bool:
        return self._perform(
            lambda: self.gateway.grade_submission(assignment_id, submission_id, grade),
            "Grade saved",
        )

    # -----------------
    # CLASS ROSTER
    # -----------------

    def assign_student(self, class_id: str, student_id: str) -> bool:
        return self._perform(
            lambda: self.gateway.add_student_to_class(class_id, student_id), "Student added to class",
        )

    def remove_student(self, class_id: str, student_id: str) -> bool:
        return self._perform(
            lambda: self.gateway.remove_student_from_class(class_id, student_id),
            "Student removed from class",
        )
