"""Task positions within board columns.

Positions inside a ``(board, status)`` group of active tasks are kept as
the contiguous range ``0..n-1``. Every operation here rewrites the whole
affected group in the caller's session, so a move commits or rolls back as
one unit together with its sibling shifts. Ties (from legacy data or
concurrent writers) are always broken by ``created_at`` and then ``id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from .db import now_utc
from .errors import InvalidStatusError
from .models import Board, Task
from .storage import Store


def sort_key(task: Task) -> tuple:
    return (task.position, task.created_at, task.id)


def ordered(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=sort_key)


def ensure_status(board: Board, status: str) -> str:
    if not board.has_column(status):
        raise InvalidStatusError(details={"status": status, "columns": board.column_ids})
    return status


def next_position(store: Store, board_id: str, status: str) -> int:
    current = store.max_position(board_id, status)
    return 0 if current is None else current + 1


def _renumber(group: Sequence[Task]) -> None:
    for index, task in enumerate(group):
        if task.position != index:
            task.position = index


def _siblings(store: Store, task: Task, status: str) -> list[Task]:
    return [t for t in store.column_tasks(task.board_id, status) if t.id != task.id]


def _clamp(position: Optional[int], size: int) -> int:
    if position is None:
        return size
    return max(0, min(position, size))


def create_task(
    store: Store,
    board: Board,
    *,
    title: str,
    status: Optional[str] = None,
    description: str = "",
    priority: str = "Medium",
    due_date: Optional[datetime] = None,
    labels: Iterable[str] = (),
    assignee: Optional[str] = None,
) -> Task:
    """Add a task at the end of its column."""
    status = ensure_status(board, status) if status else board.column_ids[0]
    now = now_utc()
    task = Task(
        board_id=board.id,
        title=title.strip(),
        description=(description or "").strip(),
        status=None,
        position=next_position(store, board.id, status),
        priority=priority,
        due_date=due_date,
        assignee=assignee,
        is_archived=False,
        created_at=now,
        updated_at=now,
    )
    task.set_labels(labels)
    task.set_status(status)
    store.add(task)
    return task


def move_task(
    store: Store,
    board: Board,
    task: Task,
    new_status: Optional[str] = None,
    new_position: Optional[int] = None,
) -> Task:
    """Move ``task`` to ``new_position`` of column ``new_status``.

    Omitting the status keeps the current column; omitting the position
    appends to the end. Positions beyond either end are clamped.
    """
    target = ensure_status(board, new_status) if new_status is not None else task.status

    if target == task.status:
        group = _siblings(store, task, target)
        group.insert(_clamp(new_position, len(group)), task)
        _renumber(group)
    else:
        source = _siblings(store, task, task.status)
        destination = _siblings(store, task, target)
        destination.insert(_clamp(new_position, len(destination)), task)
        task.set_status(target)
        _renumber(source)
        _renumber(destination)

    task.touch()
    return task


def withdraw_task(store: Store, task: Task) -> None:
    """Close the gap ``task`` leaves in its column when archived or deleted."""
    _renumber(_siblings(store, task, task.status))


def restore_task(store: Store, board: Board, task: Task) -> None:
    """Put an unarchived task back at the end of its column.

    Falls back to the first column when its original column is gone.
    """
    status = task.status if board.has_column(task.status) else board.column_ids[0]
    task.position = next_position(store, board.id, status)
    if status != task.status:
        task.set_status(status)
