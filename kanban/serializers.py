from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable, Optional

from .db import now_utc
from .models import Board, BoardColumn, Comment, Invitation, Member, Subtask, Task, User
from .permissions import resolve_access
from .schemas import (
    BoardOut,
    BoardSettings,
    ColumnOut,
    CommentOut,
    InvitationOut,
    MemberOut,
    Pagination,
    SubtaskOut,
    TaskOut,
    UserSummary,
)


def ok(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update(extra)
    return body


def pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(current=page, pages=math.ceil(total / limit) if limit else 0, total=total)


def column_out(column: BoardColumn) -> ColumnOut:
    return ColumnOut(id=column.id, name=column.name, order=column.order, color=column.color)


def board_out(board: Board, user_id: str) -> BoardOut:
    role = resolve_access(board, user_id).role
    return BoardOut(
        id=board.id,
        title=board.title,
        description=board.description,
        ownerId=board.owner_id,
        isArchived=board.is_archived,
        archivedAt=board.archived_at,
        settings=BoardSettings(
            allowTaskCreation=board.allow_task_creation,
            allowTaskDeletion=board.allow_task_deletion,
            allowColumnModification=board.allow_column_modification,
        ),
        columns=[column_out(c) for c in board.sorted_columns],
        myRole=role.value if role else None,
        membersCount=len(board.members),
        createdAt=board.created_at,
        updatedAt=board.updated_at,
        version=board.version,
    )


def user_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(id=user.id, email=user.email, name=user.name)


def member_out(member: Member, user: Optional[User] = None) -> MemberOut:
    return MemberOut(
        userId=member.user_id,
        role=member.role,
        joinedAt=member.joined_at,
        invitedBy=member.invited_by,
        user=user_summary(user),
    )


def invitation_out(
    invitation: Invitation,
    token: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        boardId=invitation.board_id or invitation.board.id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.effective_status(now or now_utc()),
        invitedBy=invitation.invited_by,
        invitedAt=invitation.invited_at,
        expiresAt=invitation.expires_at,
        token=token,
    )


def subtask_out(subtask: Subtask) -> SubtaskOut:
    return SubtaskOut(title=subtask.title, completed=subtask.completed, createdAt=subtask.created_at)


def comment_out(comment: Comment) -> CommentOut:
    return CommentOut(userId=comment.user_id, content=comment.content, createdAt=comment.created_at)


def task_out(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        boardId=task.board_id,
        title=task.title,
        description=task.description,
        status=task.status,
        position=task.position,
        priority=task.priority,
        dueDate=task.due_date,
        labels=list(task.labels or []),
        assignee=task.assignee,
        subtasks=[subtask_out(s) for s in task.subtasks],
        comments=[comment_out(c) for c in task.comments],
        isArchived=task.is_archived,
        archivedAt=task.archived_at,
        completedAt=task.completed_at,
        completionPercentage=task.completion_percentage,
        isOverdue=task.is_overdue,
        daysUntilDue=task.days_until_due,
        createdAt=task.created_at,
        updatedAt=task.updated_at,
        version=task.version,
    )


def board_snapshot(board: Board, tasks: Iterable[Task], users: dict[str, User]) -> dict[str, Any]:
    by_column: dict[str, list[TaskOut]] = {c.id: [] for c in board.sorted_columns}
    for task in tasks:
        by_column.setdefault(task.status, []).append(task_out(task))
    return {
        "board": {
            "id": board.id,
            "title": board.title,
            "description": board.description,
            "ownerId": board.owner_id,
            "createdAt": board.created_at,
        },
        "members": [member_out(m, users.get(m.user_id)) for m in board.members],
        "columns": [
            {"column": column_out(c), "tasks": by_column.get(c.id, [])} for c in board.sorted_columns
        ],
    }


def export_out(board: Board, tasks: Iterable[Task], users: dict[str, User]) -> dict[str, Any]:
    return {"exportedAt": now_utc(), **board_snapshot(board, tasks, users)}


def export_all_out(
    user_id: str,
    boards: Iterable[Board],
    tasks: dict[str, list[Task]],
    users: dict[str, User],
) -> dict[str, Any]:
    snapshots = [board_snapshot(board, tasks.get(board.id, []), users) for board in boards]
    return {
        "exportedAt": now_utc(),
        "user": user_summary(users.get(user_id)) or UserSummary(id=user_id),
        "boards": snapshots,
        "totalBoards": len(snapshots),
        "totalTasks": sum(len(group) for group in tasks.values()),
    }
