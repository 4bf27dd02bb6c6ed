"""Task operations: CRUD, moves, archiving, subtasks and comments."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from .auth import Identity
from .boards import load_board
from .errors import AuthorizationError, PreconditionFailedError, ValidationError
from .models import Board, Comment, Subtask, Task
from .ordering import create_task as place_new_task
from .ordering import move_task as reposition
from .ordering import restore_task, withdraw_task
from .permissions import Action, Role, require_permission
from .storage import Store

_PLAIN_FIELDS = ("title", "description", "priority", "due_date")


def _load_task(
    store: Store,
    identity: Identity,
    task_id: str,
    action: Action,
    *,
    include_archived: bool = False,
) -> tuple[Board, Task, Role]:
    task = store.get_task(task_id, include_archived=include_archived)
    board = store.get_board(task.board_id)
    role = require_permission(board, identity.user_id, action)
    return board, task, role


def _check_assignee(board: Board, assignee: Optional[str]) -> None:
    if assignee is not None and board.owner_id != assignee and board.find_member(assignee) is None:
        raise ValidationError("Assignee must be a member of the board", details={"assignee": assignee})


def list_tasks(
    store: Store,
    identity: Identity,
    board_id: str,
    *,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    labels: Optional[Iterable[str]] = None,
    assignee: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Task], int]:
    board, _ = load_board(store, identity, board_id, Action.READ)
    tasks = store.find_tasks(
        board.id,
        status=status,
        priority=priority,
        labels=list(labels) if labels else None,
        assignee=assignee,
        search=search,
    )
    start = (page - 1) * limit
    return tasks[start : start + limit], len(tasks)


def get_task(store: Store, identity: Identity, task_id: str) -> Task:
    _, task, _ = _load_task(store, identity, task_id, Action.READ)
    return task


def create_task(
    store: Store,
    identity: Identity,
    board_id: str,
    *,
    title: str,
    status: Optional[str] = None,
    description: str = "",
    priority: str = "Medium",
    due_date: Optional[datetime] = None,
    labels: Iterable[str] = (),
    assignee: Optional[str] = None,
) -> Task:
    with store.transaction():
        board, role = load_board(store, identity, board_id, Action.WRITE)
        if role is not Role.OWNER and not board.allow_task_creation:
            raise AuthorizationError("Task creation is disabled on this board")
        _check_assignee(board, assignee)
        task = place_new_task(
            store,
            board,
            title=title,
            status=status,
            description=description,
            priority=priority,
            due_date=due_date,
            labels=labels,
            assignee=assignee,
        )
    return task


def update_task(store: Store, identity: Identity, task_id: str, changes: dict[str, Any]) -> Task:
    """Apply a partial update; ``status``/``position`` changes go through the ordering engine.

    ``changes`` holds only the fields the caller sent, so an explicit
    ``None`` clears ``due_date`` or ``assignee``.
    Resending the current status keeps the task where it is.
    """
    with store.transaction():
        board, task, _ = _load_task(store, identity, task_id, Action.WRITE)
        status, position = changes.get("status"), changes.get("position")
        if status == task.status:
            status = None
        if status is not None or position is not None:
            reposition(store, board, task, status, position)
        for field in _PLAIN_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if value is None and field != "due_date":
                continue
            setattr(task, field, value.strip() if isinstance(value, str) else value)
        if "labels" in changes and changes["labels"] is not None:
            task.set_labels(changes["labels"])
        if "assignee" in changes:
            _check_assignee(board, changes["assignee"])
            task.assignee = changes["assignee"]
        task.touch()
    return task


def move_task(
    store: Store,
    identity: Identity,
    task_id: str,
    *,
    status: Optional[str] = None,
    position: Optional[int] = None,
    expected_version: Optional[int] = None,
) -> Task:
    with store.transaction():
        board, task, _ = _load_task(store, identity, task_id, Action.WRITE)
        if expected_version is not None and expected_version != task.version:
            raise PreconditionFailedError(details={"expected": expected_version, "actual": task.version})
        reposition(store, board, task, status, position)
    return task


def delete_task(store: Store, identity: Identity, task_id: str) -> None:
    with store.transaction():
        board, task, role = _load_task(store, identity, task_id, Action.WRITE, include_archived=True)
        if role is not Role.OWNER and not board.allow_task_deletion:
            raise AuthorizationError("Task deletion is disabled on this board")
        if not task.is_archived:
            withdraw_task(store, task)
        store.delete(task)


def toggle_archive_task(store: Store, identity: Identity, task_id: str) -> Task:
    with store.transaction():
        board, task, _ = _load_task(store, identity, task_id, Action.WRITE, include_archived=True)
        if task.is_archived:
            restore_task(store, board, task)
            task.set_archived(False)
        else:
            withdraw_task(store, task)
            task.set_archived(True)
    return task


def add_subtask(store: Store, identity: Identity, task_id: str, title: str) -> tuple[Task, Subtask]:
    with store.transaction():
        _, task, _ = _load_task(store, identity, task_id, Action.WRITE)
        subtask = task.add_subtask(title)
    return task, subtask


def toggle_subtask(store: Store, identity: Identity, task_id: str, index: int) -> tuple[Task, Subtask]:
    with store.transaction():
        _, task, _ = _load_task(store, identity, task_id, Action.WRITE)
        subtask = task.toggle_subtask(index)
    return task, subtask


def add_comment(store: Store, identity: Identity, task_id: str, content: str) -> tuple[Task, Comment]:
    with store.transaction():
        _, task, _ = _load_task(store, identity, task_id, Action.WRITE)
        comment = task.add_comment(identity.user_id, content)
    return task, comment
