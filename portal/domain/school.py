"""Domain models for classes and the content published on the portal."""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator


def as_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ClassGroup(BaseModel):
    """A class with its teachers and students (soft user references)."""
    id: str
    name: str
    teachers: List[str] = Field(default_factory=list)
    students: List[str] = Field(default_factory=list)
    created_at: Optional[UtcDatetime] = None

    def has_member(self, user_id: Optional[str]) -> bool:
        return user_id is not None and (user_id in self.teachers or user_id in self.students)


class ClassCreate(BaseModel):
    name: str = Field(min_length=1)


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)


class AnnouncementScope(str, Enum):
    GLOBAL = "global"
    CLASS = "class"


class AnnouncementCreate(BaseModel):
    """New announcement. Class-scoped announcements must name their class."""
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    scope: AnnouncementScope = AnnouncementScope.GLOBAL
    class_id: Optional[str] = None

    @model_validator(mode="after")
    def check_scope(self):
        if self.scope is AnnouncementScope.CLASS and not self.class_id:
            raise ValueError("a class announcement requires class_id")
        if self.scope is AnnouncementScope.GLOBAL and self.class_id:
            raise ValueError("a global announcement cannot reference a class")
        return self


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)


class Announcement(BaseModel):
    id: str
    title: str
    content: str
    scope: AnnouncementScope
    class_id: Optional[str] = None
    author: str
    created_at: UtcDatetime


class Submission(BaseModel):
    """A student's answer to an assignment: text, a file, or both."""
    id: str
    student: str
    text: Optional[str] = None
    file_url: Optional[str] = None
    submitted_at: UtcDatetime
    grade: Optional[float] = None
    graded_by: Optional[str] = None
    graded_at: Optional[UtcDatetime] = None


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    class_id: str
    due_date: UtcDatetime


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    due_date: Optional[UtcDatetime] = None


class Assignment(BaseModel):
    id: str
    title: str
    description: str
    class_id: str
    teacher: str
    due_date: UtcDatetime
    created_at: UtcDatetime
    submissions: List[Submission] = Field(default_factory=list)


class GradeRequest(BaseModel):
    grade: float = Field(ge=0, le=100)


class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    date: UtcDatetime


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    date: Optional[UtcDatetime] = None


class Event(BaseModel):
    id: str
    title: str
    description: str
    date: UtcDatetime
    author: str
    created_at: UtcDatetime


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class MediaCreate(BaseModel):
    title: str = "Untitled"
    url: str = Field(min_length=1)
    kind: MediaKind = MediaKind.FILE
    date: Optional[UtcDatetime] = None


class MediaItem(BaseModel):
    id: str
    title: str
    url: str
    kind: MediaKind
    date: UtcDatetime
    author: str
    created_at: UtcDatetime


class UploadResult(BaseModel):
    url: str
    filename: str
    kind: MediaKind
