from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

Priority = Literal["Low", "Medium", "High", "Critical"]
AssignableRole = Literal["admin", "member", "viewer"]

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"
COLUMN_ID = r"^[A-Za-z0-9_-]{1,60}$"


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorBody


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class UserSummary(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


# === Boards ===


class ColumnIn(BaseModel):
    id: Optional[str] = Field(default=None, pattern=COLUMN_ID)
    name: str = Field(min_length=1, max_length=50)
    order: Optional[int] = Field(default=None, ge=0)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)


class ColumnCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)


class ColumnsReplace(BaseModel):
    columns: list[ColumnIn] = Field(min_length=1)


class ColumnOrder(BaseModel):
    columnIds: list[str] = Field(min_length=1)


class ColumnOut(BaseModel):
    id: str
    name: str
    order: int
    color: str


class BoardSettings(BaseModel):
    allowTaskCreation: bool = True
    allowTaskDeletion: bool = True
    allowColumnModification: bool = True


class BoardSettingsPatch(BaseModel):
    allowTaskCreation: Optional[bool] = None
    allowTaskDeletion: Optional[bool] = None
    allowColumnModification: Optional[bool] = None


class BoardCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    columns: Optional[list[ColumnIn]] = Field(default=None, min_length=1)


class BoardUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    settings: Optional[BoardSettingsPatch] = None


class BoardOut(BaseModel):
    id: str
    title: str
    description: str
    ownerId: str
    isArchived: bool
    archivedAt: Optional[datetime]
    settings: BoardSettings
    columns: list[ColumnOut]
    myRole: Optional[str]
    membersCount: int
    createdAt: datetime
    updatedAt: datetime
    version: int


# === Members & invitations ===


class InviteIn(BaseModel):
    email: EmailStr
    role: AssignableRole = "member"


class MemberAdd(BaseModel):
    email: EmailStr
    role: AssignableRole = "member"


class RoleUpdate(BaseModel):
    role: AssignableRole


class MemberOut(BaseModel):
    userId: str
    role: str
    joinedAt: datetime
    invitedBy: Optional[str]
    user: Optional[UserSummary] = None


class InvitationOut(BaseModel):
    id: str
    boardId: str
    email: str
    role: str
    status: str
    invitedBy: str
    invitedAt: datetime
    expiresAt: datetime
    token: Optional[str] = None


# === Tasks ===


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _future(value: Optional[datetime]) -> Optional[datetime]:
    value = _aware(value)
    if value is not None and value <= datetime.now(tz=timezone.utc):
        raise ValueError("Due date must be in the future")
    return value


class TaskCreate(BaseModel):
    boardId: str
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    status: Optional[str] = Field(default=None, min_length=1, max_length=50)
    priority: Priority = "Medium"
    dueDate: Optional[datetime] = None
    labels: list[str] = Field(default_factory=list)
    assignee: Optional[str] = None

    @field_validator("dueDate")
    @classmethod
    def check_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _future(value)

    @field_validator("labels")
    @classmethod
    def check_labels(cls, value: list[str]) -> list[str]:
        if any(len(label.strip()) > 30 for label in value):
            raise ValueError("Label cannot exceed 30 characters")
        return value


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[str] = Field(default=None, min_length=1, max_length=50)
    position: Optional[int] = Field(default=None, ge=0)
    priority: Optional[Priority] = None
    dueDate: Optional[datetime] = None
    labels: Optional[list[str]] = None
    assignee: Optional[str] = None

    @field_validator("dueDate")
    @classmethod
    def check_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _future(value)

    @field_validator("labels")
    @classmethod
    def check_labels(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value and any(len(label.strip()) > 30 for label in value):
            raise ValueError("Label cannot exceed 30 characters")
        return value


class TaskMove(BaseModel):
    status: Optional[str] = Field(default=None, min_length=1, max_length=50)
    position: Optional[int] = Field(default=None, ge=0)
    expectedVersion: Optional[int] = None


class SubtaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class CommentIn(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


class SubtaskOut(BaseModel):
    title: str
    completed: bool
    createdAt: datetime


class CommentOut(BaseModel):
    userId: str
    content: str
    createdAt: datetime


class TaskOut(BaseModel):
    id: str
    boardId: str
    title: str
    description: str
    status: str
    position: int
    priority: str
    dueDate: Optional[datetime]
    labels: list[str]
    assignee: Optional[str]
    subtasks: list[SubtaskOut]
    comments: list[CommentOut]
    isArchived: bool
    archivedAt: Optional[datetime]
    completedAt: Optional[datetime]
    completionPercentage: int
    isOverdue: bool
    daysUntilDue: Optional[int]
    createdAt: datetime
    updatedAt: datetime
    version: int
