"""Tests for the client session manager, data gateway and view controller.

The FastAPI TestClient stands in for ``requests.Session``: both expose
``request(method, url, ...)``.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests

from portal.client.gateway import DataGateway
from portal.client.session import (
    FileTokenStore,
    MemoryTokenStore,
    SessionManager,
    SessionState,
    token_is_expired,
)
from portal.client.views import Affordance, Level, Page, Partition, ViewController
from portal.core.auth import create_access_token
from portal.core.errors import (
    Conflict,
    Forbidden,
    InvalidCredentials,
    NetworkError,
    NotFound,
    ServerError,
    Unauthorized,
    ValidationError,
)
from portal.core.policy import ResourceKind
from portal.domain.school import AnnouncementCreate, AnnouncementScope

PASSWORD = "secret123"
BASE_URL = "http://testserver"


@pytest.fixture
def token_store():
    return MemoryTokenStore()


@pytest.fixture
def session(test_client, token_store):
    return SessionManager(test_client, BASE_URL, token_store=token_store)


@pytest.fixture
def gateway(session):
    return DataGateway(session)


@pytest.fixture
def controller(session, gateway):
    return ViewController(session, gateway)


@pytest.fixture
def offline_http():
    http = Mock()
    http.request.side_effect = requests.ConnectionError("connection refused")
    return http


class TestTokenStores:

    def test_memory_store(self):
        store = MemoryTokenStore()
        store.save("abc")
        assert store.load() == "abc"
        store.clear()
        assert store.load() is None

    def test_file_store_round_trip(self, tmp_path):
        store = FileTokenStore(str(tmp_path / "portal" / "token.json"))

        assert store.load() is None
        store.save("abc")
        assert FileTokenStore(str(tmp_path / "portal" / "token.json")).load() == "abc"
        store.clear()
        store.clear()
        assert store.load() is None

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text("{not json")

        assert FileTokenStore(str(path)).load() is None


class TestSessionManager:
    """Session state machine."""

    def test_starts_anonymous(self, session):
        assert session.state is SessionState.ANONYMOUS
        assert not session.is_authenticated
        assert session.auth_headers() == {}

    def test_login(self, session, token_store, teacher):
        seen = []
        session.add_listener(seen.append)

        user = session.login("teacher@school.org", PASSWORD)

        assert user.id == teacher.id
        assert session.state is SessionState.AUTHENTICATED
        assert seen == [SessionState.AUTHENTICATING, SessionState.AUTHENTICATED]
        assert token_store.load() == session.token
        assert session.auth_headers() == {"Authorization": f"Bearer {session.token}"}

    def test_login_wrong_password(self, session, token_store, teacher):
        with pytest.raises(InvalidCredentials):
            session.login("teacher@school.org", "wrong-password")

        assert session.state is SessionState.ANONYMOUS
        assert token_store.load() is None

    def test_login_unreachable_api(self, offline_http):
        session = SessionManager(offline_http, BASE_URL)

        with pytest.raises(NetworkError):
            session.login("teacher@school.org", PASSWORD)

        assert session.state is SessionState.ANONYMOUS

    def test_failed_login_drops_previous_identity(self, session, token_store, teacher, student):
        session.login(teacher.email, PASSWORD)

        with pytest.raises(InvalidCredentials):
            session.login(student.email, "wrong-password")

        assert session.state is SessionState.ANONYMOUS
        assert session.token is None
        assert session.user is None
        assert session.auth_headers() == {}
        assert token_store.load() is None

    def test_failed_register_drops_previous_identity(self, session, token_store, teacher, student):
        session.login(teacher.email, PASSWORD)

        with pytest.raises(Conflict):
            session.register("Copy", student.email, "abcdef")

        assert session.auth_headers() == {}
        assert token_store.load() is None

    def test_unreachable_login_drops_previous_identity(self, session, token_store, teacher, offline_http):
        session.login(teacher.email, PASSWORD)
        session.http = offline_http

        with pytest.raises(NetworkError):
            session.login(teacher.email, PASSWORD)

        assert session.state is SessionState.ANONYMOUS
        assert session.auth_headers() == {}
        assert token_store.load() is None

    def test_register(self, session):
        user = session.register("Noa", "noa@school.org", "abcdef")

        assert user.role.value == "student"
        assert session.is_student

    def test_register_duplicate(self, session, student):
        with pytest.raises(Exception) as exc_info:
            session.register("Copy", "aisha@school.org", "abcdef")

        assert exc_info.value.status_code == 409
        assert session.state is SessionState.ANONYMOUS

    @pytest.mark.parametrize("who,is_student,is_teacher,is_admin", [
        ("student", True, False, False),
        ("teacher", False, True, False),
        ("admin", False, True, True),
    ])
    def test_role_predicates(self, request, session, who, is_student, is_teacher, is_admin):
        user = request.getfixturevalue(who)

        session.login(user.email, PASSWORD)

        assert session.is_student is is_student
        assert session.is_teacher is is_teacher
        assert session.is_admin is is_admin

    def test_validate_stored_token(self, test_client, student):
        store = MemoryTokenStore(create_access_token(student))
        session = SessionManager(test_client, BASE_URL, token_store=store)

        assert session.validate()
        assert session.state is SessionState.AUTHENTICATED
        assert session.user.id == student.id

    def test_validate_expired_token_offline(self, student):
        """Expiry is checked locally without calling the API."""
        http = Mock()
        store = MemoryTokenStore(create_access_token(student, expires_delta=timedelta(hours=-1)))
        session = SessionManager(http, BASE_URL, token_store=store)
        seen = []
        session.add_listener(seen.append)

        assert not session.validate()

        http.request.assert_not_called()
        assert session.state is SessionState.ANONYMOUS
        assert seen == [SessionState.EXPIRED, SessionState.ANONYMOUS]
        assert store.load() is None

    def test_validate_rejected_token(self, test_client, services, student):
        store = MemoryTokenStore(create_access_token(student))
        session = SessionManager(test_client, BASE_URL, token_store=store)
        services.users.delete(student.id)

        assert not session.validate()
        assert session.state is SessionState.ANONYMOUS
        assert store.load() is None

    def test_validate_unreachable_api_keeps_stored_token(self, offline_http, test_client, student):
        token = create_access_token(student)
        store = MemoryTokenStore(token)
        session = SessionManager(offline_http, BASE_URL, token_store=store)

        assert not session.validate()
        assert session.state is SessionState.ANONYMOUS
        assert session.auth_headers() == {}
        assert store.load() == token

        session.http = test_client
        assert session.validate()
        assert session.user.id == student.id

    def test_validate_server_error_keeps_stored_token(self, student):
        token = create_access_token(student)
        store = MemoryTokenStore(token)
        http = Mock()
        http.request.return_value = Mock(status_code=503, json=Mock(return_value={"error": "down"}))
        session = SessionManager(http, BASE_URL, token_store=store)

        assert not session.validate()
        assert session.state is SessionState.ANONYMOUS
        assert session.token is None
        assert store.load() == token

    def test_token_is_expired(self, student):
        assert not token_is_expired(create_access_token(student))
        assert token_is_expired(create_access_token(student, expires_delta=timedelta(seconds=-5)))
        assert token_is_expired("garbage")

    def test_logout_is_idempotent(self, session, token_store, teacher):
        session.login(teacher.email, PASSWORD)
        seen = []
        session.add_listener(seen.append)

        session.logout()
        session.logout()

        assert seen == [SessionState.LOGGED_OUT, SessionState.ANONYMOUS]
        assert session.token is None
        assert session.user is None
        assert token_store.load() is None


class TestDataGateway:
    """Error normalisation and forced logout."""

    def test_public_fetch_without_session(self, gateway, services, teacher):
        services.announcements.create(AnnouncementCreate(title="Hello", content="World"), teacher)

        items = gateway.get_announcements()

        assert [a.title for a in items] == ["Hello"]

    def test_authenticated_create(self, session, gateway, teacher):
        session.login(teacher.email, PASSWORD)

        group = gateway.create_class("9C")

        assert group.teachers == [teacher.id]
        assert [c.id for c in gateway.get_classes()] == [group.id]

    def test_401_forces_logout(self, session, gateway, services, teacher):
        session.login(teacher.email, PASSWORD)
        services.users.delete(teacher.id)

        with pytest.raises(Unauthorized):
            gateway.get_classes()

        assert session.state is SessionState.ANONYMOUS
        assert session.token is None

    def test_anonymous_protected_fetch(self, gateway):
        with pytest.raises(Unauthorized):
            gateway.get_classes()

    def test_403_keeps_session(self, session, gateway, student):
        session.login(student.email, PASSWORD)

        with pytest.raises(Forbidden):
            gateway.create_event("Party", "...", when=datetime(2030, 5, 1, tzinfo=timezone.utc))

        assert session.is_authenticated

    def test_404_and_400(self, session, gateway, teacher):
        session.login(teacher.email, PASSWORD)

        with pytest.raises(NotFound):
            gateway.get_assignment("missing")
        with pytest.raises(ValidationError):
            gateway.create_class("")

    def test_network_error(self, session, offline_http):
        gateway = DataGateway(session, http=offline_http)

        with pytest.raises(NetworkError):
            gateway.get_events()

    def test_non_json_server_error(self, session):
        response = Mock(status_code=502)
        response.json.side_effect = ValueError("not json")
        gateway = DataGateway(session, http=Mock(**{"request.return_value": response}))

        with pytest.raises(ServerError):
            gateway.get_events()

    def test_submission_workflow(self, session, gateway, teacher, student, assignment):
        session.login(student.email, PASSWORD)
        submitted = gateway.submit_assignment(
            assignment["id"], text="My answer", file=("answer.txt", b"42"),
        )
        assert submitted.file_url.endswith("-answer.txt")

        session.logout()
        session.login(teacher.email, PASSWORD)
        graded = gateway.grade_submission(assignment["id"], submitted.id, 88)

        assert graded.grade == 88
        assert [s.id for s in gateway.get_submissions(assignment["id"])] == [submitted.id]


class TestViewController:
    """Partitions, affordances and failure handling."""

    def test_guest_home(self, controller, services, teacher):
        services.announcements.create(AnnouncementCreate(title="Welcome", content="..."), teacher)

        view = controller.show_page(Page.HOME)

        assert view.partition is Partition.GUEST
        assert view.affordances == {Affordance.LOGIN, Affordance.REGISTER}
        assert [a.title for a in view.content["announcements"]] == ["Welcome"]

    def test_guest_restricted_pages(self, controller, gateway):
        gateway.get_classes = Mock()

        view = controller.show_page(Page.CLASSES)

        assert view.restricted
        assert view.content == {}
        gateway.get_classes.assert_not_called()

    def test_teacher_affordances(self, controller, teacher):
        assert controller.login(teacher.email, PASSWORD)

        view = controller.state()

        assert view.partition is Partition.TEACHER
        assert view.user_name == "Dana Levi"
        assert {Affordance.ADD_ANNOUNCEMENT, Affordance.ADD_CLASS, Affordance.ADD_ASSIGNMENT,
                Affordance.ADD_EVENT, Affordance.ADD_MEDIA, Affordance.LOGOUT} <= view.affordances
        assert Affordance.ADMIN_LINK not in view.affordances
        assert Affordance.DELETE_MEDIA not in view.affordances
        assert Affordance.SUBMIT_ASSIGNMENT not in view.affordances
        assert controller.show_page(Page.ADMIN).restricted

    def test_student_affordances(self, controller, student):
        controller.login(student.email, PASSWORD)

        view = controller.state()

        assert view.partition is Partition.STUDENT
        assert Affordance.SUBMIT_ASSIGNMENT in view.affordances
        assert Affordance.ADD_ANNOUNCEMENT not in view.affordances

    def test_admin_page(self, controller, admin, teacher):
        controller.login(admin.email, PASSWORD)

        view = controller.show_page(Page.ADMIN)

        assert view.partition is Partition.ADMIN
        assert not view.restricted
        assert {u.email for u in view.content["users"]} == {admin.email, teacher.email}
        assert Affordance.DELETE_MEDIA in view.affordances

    def test_login_failure_notifies(self, controller, teacher):
        assert not controller.login(teacher.email, "wrong-password")

        notes = controller.drain_notifications()
        assert [n.level for n in notes] == [Level.ERROR]
        assert controller.state().partition is Partition.GUEST
        assert controller.drain_notifications() == []

    def test_failed_fetch_keeps_prior_content(self, controller, gateway, services, teacher):
        services.announcements.create(AnnouncementCreate(title="Kept", content="..."), teacher)
        controller.show_page(Page.ANNOUNCEMENTS)
        controller.drain_notifications()
        gateway.get_announcements = Mock(side_effect=ServerError("Database unavailable"))

        view = controller.show_page(Page.ANNOUNCEMENTS)

        assert [a.title for a in view.content["announcements"]] == ["Kept"]
        notes = controller.drain_notifications()
        assert [(n.level, n.message) for n in notes] == [(Level.ERROR, "Database unavailable")]

    def test_failed_navigation_stays_on_page(self, controller, gateway):
        controller.show_page(Page.EVENTS)
        gateway.get_media = Mock(side_effect=NetworkError("Network error"))

        view = controller.show_page(Page.MEDIA)

        assert view.page is Page.EVENTS

    def test_unauthorized_resets_to_guest_home(self, controller, services, teacher, class_group):
        controller.login(teacher.email, PASSWORD)
        assert controller.show_page(Page.CLASSES).content["classes"]
        controller.drain_notifications()
        services.users.delete(teacher.id)

        view = controller.show_page(Page.CLASSES)

        assert view.page is Page.HOME
        assert view.partition is Partition.GUEST
        assert "announcements" in view.content
        assert [n.level for n in controller.drain_notifications()] == [Level.WARNING]

    def test_add_announcement_refreshes_page(self, controller, teacher, class_group):
        controller.login(teacher.email, PASSWORD)
        controller.show_page(Page.ANNOUNCEMENTS)

        ok = controller.add_announcement(
            "Quiz", "Friday", AnnouncementScope.CLASS, class_id=class_group.id,
        )

        assert ok
        assert [a.title for a in controller.state().content["announcements"]] == ["Quiz"]
        assert controller.drain_notifications()[-1].level is Level.SUCCESS

    def test_add_class_validation_error(self, controller, teacher):
        controller.login(teacher.email, PASSWORD)
        controller.drain_notifications()

        assert not controller.add_class("")
        assert controller.drain_notifications()[0].level is Level.ERROR

    def test_roster_management(self, controller, services, teacher, other_student, class_group):
        controller.login(teacher.email, PASSWORD)
        view = controller.show_page(Page.CLASSES)
        assert [s.id for s in view.content["students"]]

        assert controller.assign_student(class_group.id, other_student.id)
        assert other_student.id in services.classes.get(class_group.id).students

        assert controller.remove_student(class_group.id, other_student.id)
        assert other_student.id not in services.classes.get(class_group.id).students

    def test_submit_and_grade(self, controller, session, teacher, student, assignment):
        controller.login(student.email, PASSWORD)
        controller.show_page(Page.ASSIGNMENTS)
        assert controller.submit_assignment(assignment["id"], text="Loops repeat")

        controller.logout()
        controller.login(teacher.email, PASSWORD)
        controller.show_page(Page.ASSIGNMENTS)
        assert controller.open_submissions(assignment["id"])
        submission = controller.state().content["submissions"]["items"][0]

        assert controller.grade_submission(assignment["id"], submission.id, 75)
        refreshed = controller.state().content["submissions"]["items"][0]
        assert refreshed.grade == 75

    def test_deleting_open_assignment_closes_submissions(self, controller, teacher, assignment):
        controller.login(teacher.email, PASSWORD)
        controller.show_page(Page.ASSIGNMENTS)
        assert controller.open_submissions(assignment["id"])
        controller.drain_notifications()

        assert controller.delete(ResourceKind.ASSIGNMENT, assignment["id"])

        view = controller.refresh()
        assert "submissions" not in view.content
        assert view.content["assignments"] == []
        assert [n.level for n in controller.drain_notifications()] == [Level.SUCCESS]

    def test_vanished_assignment_drops_submissions_panel(self, controller, services, teacher, assignment):
        controller.login(teacher.email, PASSWORD)
        controller.show_page(Page.ASSIGNMENTS)
        assert controller.open_submissions(assignment["id"])
        controller.drain_notifications()
        services.assignments.delete(assignment["id"])

        view = controller.refresh()

        assert view.page is Page.ASSIGNMENTS
        assert "submissions" not in view.content
        assert view.content["assignments"] == []
        assert controller.drain_notifications() == []

    def test_delete_resource(self, controller, services, admin, teacher):
        controller.login(admin.email, PASSWORD)
        controller.show_page(Page.ADMIN)

        assert controller.delete(ResourceKind.USER, teacher.id)
        assert services.users.find(teacher.id) is None
        assert teacher.id not in {u.id for u in controller.state().content["users"]}

    def test_logout_clears_content(self, controller, teacher, class_group):
        controller.login(teacher.email, PASSWORD)
        controller.show_page(Page.CLASSES)

        view = controller.logout()

        assert view.partition is Partition.GUEST
        assert view.page is Page.HOME
        controller.page = Page.CLASSES
        assert controller.state().content == {}

    def test_change_password(self, controller, teacher):
        controller.login(teacher.email, PASSWORD)

        assert controller.change_password(PASSWORD, "brand-new")
        assert not controller.change_password(PASSWORD, "again-new")

    def test_restore_with_expired_token(self, test_client, student):
        store = MemoryTokenStore(create_access_token(student, expires_delta=timedelta(minutes=-1)))
        session = SessionManager(test_client, BASE_URL, token_store=store)
        controller = ViewController(session, DataGateway(session))

        view = controller.restore()

        assert view.partition is Partition.GUEST
        assert [n.level for n in controller.drain_notifications()] == [Level.WARNING]
