"""Domain models for users and authentication."""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class User(BaseModel):
    """User account as exposed by the API (never carries the password hash).

    Attributes:
        id: Opaque identifier
        name: Display name
        email: Unique email address
        role: student, teacher or admin
        classes: Ids of the classes the user belongs to
        created_at: Account creation timestamp
    """
    id: str
    name: str
    email: EmailStr
    role: Role
    classes: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "5f0c1e",
            "name": "Dana Levi",
            "email": "dana@school.org",
            "role": "teacher",
            "classes": ["7a91b2"],
        }
    })


class UserRecord(User):
    """Stored user including the bcrypt hash; internal only."""
    password_hash: str


class TokenData(BaseModel):
    """JWT token payload data.

    Attributes:
        sub: Subject (user ID)
        email: User email
        role: User role
        exp: Token expiration time
        iat: Token issued at time
    """
    sub: str
    email: str
    role: Role
    exp: datetime
    iat: Optional[datetime] = None


class LoginRequest(BaseModel):
    """Login credentials request."""
    email: EmailStr
    password: str

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "teacher@school.org",
            "password": "secure_password123"
        }
    })


class RegisterRequest(BaseModel):
    """Self-registration (and admin user creation) payload."""
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.STUDENT

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class UserUpdate(BaseModel):
    """Admin edit of a user; omitted fields are left unchanged."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    password: Optional[str] = Field(default=None, min_length=6)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class AuthResponse(BaseModel):
    """Token returned by login and registration.

    Attributes:
        token: JWT access token
        token_type: Always "bearer"
        expires_in: Token lifetime in seconds
        user: Authenticated user details
    """
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: User
