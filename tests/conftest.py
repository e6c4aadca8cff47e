"""Pytest configuration and shared fixtures."""
import os

# Settings are read on import: keep hashing cheap and force the memory store
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MONGODB_URI"] = ""

import pytest
from fastapi.testclient import TestClient

from portal.core.auth import create_access_token
from portal.core.config import settings
from portal.domain.school import ClassCreate
from portal.domain.user import RegisterRequest, Role
from portal.infrastructure.store import MemoryStore
from portal.infrastructure.uploads import UploadStorage

PASSWORD = "secret123"


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return MemoryStore()


@pytest.fixture
def uploads(tmp_path):
    """Upload storage writing into a temporary directory."""
    return UploadStorage(str(tmp_path / "uploads"), max_bytes=1024 * 1024)


@pytest.fixture
def app(store, uploads):
    """Application wired to the test store and upload directory."""
    from main import create_app
    return create_app(settings, store=store, uploads=uploads)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def test_client(app):
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def make_user(services):
    """Factory creating accounts directly through the credential store."""
    def _make(role: Role, email: str, name: str = None, password: str = PASSWORD):
        return services.users.create(RegisterRequest(
            name=name or email.split("@")[0].title(),
            email=email,
            password=password,
            role=role,
        ))
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, "admin@school.org", "Principal Skinner")


@pytest.fixture
def teacher(make_user):
    return make_user(Role.TEACHER, "teacher@school.org", "Dana Levi")


@pytest.fixture
def other_teacher(make_user):
    return make_user(Role.TEACHER, "ori@school.org", "Ori Katz")


@pytest.fixture
def student(make_user):
    return make_user(Role.STUDENT, "aisha@school.org", "Aisha")


@pytest.fixture
def other_student(make_user):
    return make_user(Role.STUDENT, "adam@school.org", "Adam")


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers():
    """Return bearer headers for a user: ``headers(teacher)``."""
    return auth_headers


@pytest.fixture
def class_group(services, teacher, student):
    """Class 7B taught by ``teacher`` with ``student`` enrolled."""
    group = services.classes.create(ClassCreate(name="7B"), teacher)
    return services.classes.add_student(group.id, student.id)


@pytest.fixture
def assignment(test_client, headers, teacher, class_group):
    """Assignment in class 7B created through the API."""
    response = test_client.post(
        "/api/assignments",
        json={
            "title": "Essay on loops",
            "description": "Two pages on while loops",
            "class_id": class_group.id,
            "due_date": "2030-01-15T23:59:00Z",
        },
        headers=headers(teacher),
    )
    assert response.status_code == 201
    return response.json()
