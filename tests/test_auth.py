"""Unit tests for authentication."""
import inspect

import pytest
import jwt
from datetime import timedelta

from portal.api.deps import require
from portal.core.auth import (
    ALGORITHM,
    SECRET_KEY,
    authenticate_user,
    create_access_token,
    decode_token,
    get_current_user,
    get_optional_user,
    hash_password,
    verify_password,
)
from portal.core.config import Settings
from portal.core.errors import Unauthorized, ValidationError
from portal.core.policy import Action, ResourceKind
from portal.domain.user import LoginRequest, Role

PASSWORD = "secret123"


class TestJWTTokens:
    """Test JWT token creation and validation."""

    def test_create_access_token(self, teacher):
        """Test creating JWT token."""
        token = create_access_token(teacher)

        assert token is not None
        assert isinstance(token, str)
        assert len(token) > 50  # JWT tokens are long

    def test_decode_valid_token(self, teacher):
        """Test decoding valid token."""
        token = create_access_token(teacher)
        token_data = decode_token(token)

        assert token_data.sub == teacher.id
        assert token_data.email == teacher.email
        assert token_data.role is Role.TEACHER

    def test_decode_expired_token(self, teacher):
        """Test decoding expired token."""
        expired_token = create_access_token(teacher, expires_delta=timedelta(hours=-1))

        with pytest.raises(Unauthorized) as exc_info:
            decode_token(expired_token)

        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.message

    def test_decode_invalid_token(self):
        """Test decoding malformed token."""
        with pytest.raises(Unauthorized) as exc_info:
            decode_token("not.a.valid.jwt.token")

        assert exc_info.value.status_code == 401

    def test_decode_token_with_wrong_signature(self, teacher):
        """A token signed with another key is rejected."""
        forged = jwt.encode(
            {"sub": teacher.id, "email": teacher.email, "role": "admin", "exp": 9999999999},
            "some-other-secret",
            algorithm=ALGORITHM,
        )

        with pytest.raises(Unauthorized):
            decode_token(forged)

    def test_token_contains_required_claims(self, student):
        """Test that token contains all required claims."""
        token = create_access_token(student)
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

        assert payload["sub"] == student.id
        assert payload["email"] == student.email
        assert payload["role"] == "student"
        assert "exp" in payload
        assert "iat" in payload

    def test_default_lifetime_is_seven_days(self, student):
        """Tokens expire a week after issue by default."""
        payload = jwt.decode(create_access_token(student), SECRET_KEY, algorithms=[ALGORITHM])

        assert payload["exp"] - payload["iat"] == 7 * 24 * 60 * 60


class TestPasswordHashing:
    """Test bcrypt hashing helpers."""

    def test_hash_is_not_plain_text(self):
        hashed = hash_password("hunter22")

        assert hashed != "hunter22"
        assert hashed.startswith("$2")

    def test_verify_correct_password(self):
        assert verify_password("hunter22", hash_password("hunter22"))

    def test_verify_wrong_password(self):
        assert not verify_password("hunter23", hash_password("hunter22"))

    def test_same_password_hashes_differently(self):
        """Each hash carries its own salt."""
        assert hash_password("hunter22") != hash_password("hunter22")

    def test_password_over_72_bytes_rejected(self):
        with pytest.raises(ValidationError):
            hash_password("x" * 73)

    def test_corrupt_hash_never_matches(self):
        assert not verify_password("hunter22", "not-a-bcrypt-hash")


class TestUserAuthentication:
    """Test user authentication."""

    def test_authenticate_valid_user(self, services, teacher):
        """Test authenticating with correct credentials."""
        user = authenticate_user(services.users, "teacher@school.org", PASSWORD)

        assert user is not None
        assert user.id == teacher.id
        assert user.role is Role.TEACHER
        assert not hasattr(user, "password_hash")

    def test_authenticate_invalid_password(self, services, teacher):
        """Test authentication with wrong password."""
        assert authenticate_user(services.users, "teacher@school.org", "wrongpassword") is None

    def test_authenticate_nonexistent_user(self, services):
        """Test authentication with non-existent email."""
        assert authenticate_user(services.users, "nobody@example.com", PASSWORD) is None

    def test_authenticate_email_is_case_insensitive(self, services, teacher):
        user = authenticate_user(services.users, "Teacher@School.org", PASSWORD)

        assert user is not None
        assert user.id == teacher.id


class TestAuthDependencies:
    """Dependencies that load the user from the store run in FastAPI's threadpool."""

    def test_user_dependencies_are_sync(self):
        assert not inspect.iscoroutinefunction(get_current_user)
        assert not inspect.iscoroutinefunction(get_optional_user)

    def test_role_checker_is_sync(self):
        checker = require(Action.CREATE, ResourceKind.EVENT)

        assert not inspect.iscoroutinefunction(checker)


class TestModelConfig:

    def test_login_example_in_schema(self):
        schema = LoginRequest.model_json_schema()

        assert schema["example"]["email"] == "teacher@school.org"

    def test_settings_read_env_file(self):
        assert Settings.model_config["env_file"] == ".env"
        assert Settings.model_config["extra"] == "ignore"
