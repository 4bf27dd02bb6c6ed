from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base, UTCDateTime, now_utc
from .errors import (
    ColumnNotFoundError,
    DuplicateMemberError,
    MemberNotFoundError,
    OwnerRemovalError,
    OwnerRoleChangeError,
    SubtaskNotFoundError,
    ValidationError,
)
from .permissions import Role, assignable_role
from .utils import days_between, new_column_id, new_uuid

DEFAULT_COLUMN_COLOR = "#3B82F6"
DEFAULT_COLUMNS = (
    {"id": "todo", "name": "To Do", "color": "#6B7280"},
    {"id": "in-progress", "name": "In Progress", "color": "#3B82F6"},
    {"id": "done", "name": "Done", "color": "#10B981"},
)
# Status of the terminal column; entering it stamps ``completed_at``.
DONE_STATUS = "done"


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), unique=True, index=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)


class Board(Base):
    __tablename__ = "boards"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text, default="")
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    allow_task_creation: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_task_deletion: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_column_modification: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    members: Mapped[list[Member]] = relationship(
        back_populates="board", cascade="all, delete-orphan", order_by="Member.id"
    )
    invitations: Mapped[list[Invitation]] = relationship(
        back_populates="board", cascade="all, delete-orphan", order_by="Invitation.invited_at"
    )
    columns: Mapped[list[BoardColumn]] = relationship(
        back_populates="board", cascade="all, delete-orphan", order_by="BoardColumn.order"
    )

    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def create(
        cls,
        owner_id: str,
        title: str,
        description: str = "",
        columns: Optional[Iterable[dict[str, Any]]] = None,
    ) -> Board:
        """Build a new board with the owner already enrolled as a member."""
        now = now_utc()
        board = cls(
            id=new_uuid(),
            title=title.strip(),
            description=(description or "").strip(),
            owner_id=owner_id,
            is_archived=False,
            allow_task_creation=True,
            allow_task_deletion=True,
            allow_column_modification=True,
            created_at=now,
            updated_at=now,
        )
        board.members.append(
            Member(user_id=owner_id, role=Role.OWNER.value, joined_at=now, invited_by=None)
        )
        board.replace_columns(list(columns) if columns else [dict(c) for c in DEFAULT_COLUMNS])
        return board

    def touch(self) -> None:
        self.updated_at = now_utc()

    # === Membership ===

    def find_member(self, user_id: str) -> Optional[Member]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def add_member(self, user_id: str, role: Role | str, invited_by: Optional[str]) -> Member:
        if self.find_member(user_id) is not None:
            raise DuplicateMemberError(details={"userId": user_id})
        resolved = assignable_role(role)
        member = Member(
            user_id=user_id,
            role=resolved.value,
            joined_at=now_utc(),
            invited_by=invited_by,
        )
        self.members.append(member)
        self.touch()
        return member

    def remove_member(self, user_id: str) -> None:
        if user_id == self.owner_id:
            raise OwnerRemovalError()
        member = self.find_member(user_id)
        if member is None:
            raise MemberNotFoundError(details={"userId": user_id})
        self.members.remove(member)
        self.touch()

    def update_member_role(self, user_id: str, role: Role | str) -> Member:
        member = self.find_member(user_id)
        if member is None:
            raise MemberNotFoundError(details={"userId": user_id})
        if member.role == Role.OWNER.value:
            raise OwnerRoleChangeError()
        member.role = assignable_role(role).value
        self.touch()
        return member

    def pending_invitation_for(self, email: str, now: Optional[datetime] = None) -> Optional[Invitation]:
        now = now or now_utc()
        for invitation in self.invitations:
            if invitation.email == email and invitation.is_usable(now):
                return invitation
        return None

    # === Columns ===

    @property
    def sorted_columns(self) -> list[BoardColumn]:
        return sorted(self.columns, key=lambda c: c.order)

    @property
    def column_ids(self) -> list[str]:
        return [c.id for c in self.sorted_columns]

    def has_column(self, column_id: str) -> bool:
        return any(c.id == column_id for c in self.columns)

    def get_column(self, column_id: str) -> BoardColumn:
        for column in self.columns:
            if column.id == column_id:
                return column
        raise ColumnNotFoundError(details={"columnId": column_id})

    def _renumber_columns(self) -> None:
        for index, column in enumerate(self.sorted_columns):
            column.order = index

    def add_column(self, name: str, color: Optional[str] = None) -> BoardColumn:
        column = BoardColumn(
            id=new_column_id(),
            name=name.strip(),
            order=len(self.columns),
            color=color or DEFAULT_COLUMN_COLOR,
        )
        self.columns.append(column)
        self._renumber_columns()
        self.touch()
        return column

    def remove_column(self, column_id: str) -> None:
        column = self.get_column(column_id)
        if len(self.columns) == 1:
            raise ValidationError("Board must have at least one column")
        self.columns.remove(column)
        self._renumber_columns()
        self.touch()

    def reorder_columns(self, column_ids: list[str]) -> None:
        if len(set(column_ids)) != len(column_ids) or set(column_ids) != set(self.column_ids):
            raise ValidationError(
                "Column order must list every existing column exactly once",
                details={"columnIds": column_ids},
            )
        positions = {column_id: index for index, column_id in enumerate(column_ids)}
        for column in self.columns:
            column.order = positions[column.id]
        self._renumber_columns()
        self.touch()

    def replace_columns(self, specs: list[dict[str, Any]]) -> None:
        """Replace the column set, keeping rows whose ids survive.

        ``specs`` entries carry ``name`` and optionally ``id``, ``color`` and
        ``order``; entries without ``order`` keep their list position.
        """
        if not specs:
            raise ValidationError("Board must have at least one column")
        ids = [spec.get("id") or new_column_id() for spec in specs]
        if len(set(ids)) != len(ids):
            raise ValidationError("Column ids must be unique", details={"columnIds": ids})

        ranked = sorted(
            zip(ids, specs),
            key=lambda pair: pair[1].get("order") if pair[1].get("order") is not None else ids.index(pair[0]),
        )
        existing = {column.id: column for column in self.columns}
        columns: list[BoardColumn] = []
        for index, (column_id, spec) in enumerate(ranked):
            column = existing.get(column_id) or BoardColumn(id=column_id)
            column.name = spec["name"].strip()
            column.color = spec.get("color") or column.color or DEFAULT_COLUMN_COLOR
            column.order = index
            columns.append(column)
        self.columns = columns
        self.touch()


class BoardColumn(Base):
    __tablename__ = "board_columns"
    board_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("boards.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(60), primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    order: Mapped[int] = mapped_column(Integer)
    color: Mapped[str] = mapped_column(String(7), default=DEFAULT_COLUMN_COLOR)

    board: Mapped[Board] = relationship(back_populates="columns")


class Member(Base):
    __tablename__ = "board_members"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"))
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    role: Mapped[str] = mapped_column(String(16))  # owner|admin|member|viewer
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    invited_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    board: Mapped[Board] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("board_id", "user_id", name="uq_board_member"),
    )


class Invitation(Base):
    __tablename__ = "invitations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"))
    email: Mapped[str] = mapped_column(String(320), index=True)
    role: Mapped[str] = mapped_column(String(16))
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    invited_by: Mapped[str] = mapped_column(String(128))
    invited_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending|accepted|expired|declined

    board: Mapped[Board] = relationship(back_populates="invitations")

    def is_usable(self, now: datetime) -> bool:
        return self.status == "pending" and self.expires_at > now

    def effective_status(self, now: datetime) -> str:
        if self.status == "pending" and self.expires_at <= now:
            return "expired"
        return self.status


class Task(Base):
    __tablename__ = "tasks"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(60))
    position: Mapped[int] = mapped_column(Integer, default=0)
    priority: Mapped[str] = mapped_column(String(16), default="Medium")
    due_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    labels: Mapped[list[str]] = mapped_column(JSON, default=list)
    assignee: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    subtasks: Mapped[list[Subtask]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Subtask.index",
        collection_class=ordering_list("index"),
    )
    comments: Mapped[list[Comment]] = relationship(
        back_populates="task", cascade="all, delete-orphan", order_by="Comment.id"
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_tasks_board_status_position", "board_id", "status", "position"),
    )

    def touch(self) -> None:
        self.updated_at = now_utc()

    def set_status(self, status: str) -> None:
        previous = self.status
        self.status = status
        if status == DONE_STATUS:
            if previous != DONE_STATUS or self.completed_at is None:
                self.completed_at = now_utc()
        else:
            self.completed_at = None

    def set_archived(self, archived: bool) -> None:
        self.is_archived = archived
        self.archived_at = now_utc() if archived else None
        self.touch()

    def set_labels(self, labels: Iterable[str]) -> None:
        self.labels = list(dict.fromkeys(label.strip() for label in labels if label.strip()))

    def add_subtask(self, title: str) -> Subtask:
        subtask = Subtask(title=title.strip(), completed=False, created_at=now_utc())
        self.subtasks.append(subtask)
        self.touch()
        return subtask

    def toggle_subtask(self, index: int) -> Subtask:
        if index < 0 or index >= len(self.subtasks):
            raise SubtaskNotFoundError(details={"index": index})
        subtask = self.subtasks[index]
        subtask.completed = not subtask.completed
        self.touch()
        return subtask

    def add_comment(self, user_id: str, content: str) -> Comment:
        comment = Comment(user_id=user_id, content=content.strip(), created_at=now_utc())
        self.comments.append(comment)
        self.touch()
        return comment

    @property
    def completion_percentage(self) -> int:
        if not self.subtasks:
            return 100 if self.status == DONE_STATUS else 0
        done = sum(1 for s in self.subtasks if s.completed)
        return round(done * 100 / len(self.subtasks))

    @property
    def is_overdue(self) -> bool:
        return bool(self.due_date and self.due_date < now_utc() and self.status != DONE_STATUS)

    @property
    def days_until_due(self) -> Optional[int]:
        if self.due_date is None:
            return None
        return days_between(now_utc(), self.due_date)


class Subtask(Base):
    __tablename__ = "subtasks"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"))
    index: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(200))
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    task: Mapped[Task] = relationship(back_populates="subtasks")


class Comment(Base):
    __tablename__ = "task_comments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"))
    user_id: Mapped[str] = mapped_column(String(128))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    task: Mapped[Task] = relationship(back_populates="comments")
