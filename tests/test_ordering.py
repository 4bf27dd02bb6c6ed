from datetime import timedelta

import pytest

from kanban import tasks as task_service
from kanban.auth import Identity
from kanban.db import SessionLocal
from kanban.errors import ConflictError, InvalidStatusError
from kanban.ordering import create_task, move_task
from kanban.storage import Store

COLUMNS = [
    {"id": "todo", "name": "To Do"},
    {"id": "doing", "name": "Doing"},
    {"id": "done", "name": "Done"},
]


@pytest.fixture
def board(make_board):
    return make_board(columns=COLUMNS)


@pytest.fixture
def add(store, board):
    def _add(title, status="todo"):
        with store.transaction():
            return create_task(store, board, title=title, status=status)

    return _add


def column(store, board, status):
    return [(t.title, t.position) for t in store.column_tasks(board.id, status)]


def move(store, board, task, status=None, position=None):
    with store.transaction():
        move_task(store, board, task, status, position)


def test_create_appends_to_column(store, board, add):
    for title in ("a", "b", "c"):
        add(title)
    add("x", "doing")
    assert column(store, board, "todo") == [("a", 0), ("b", 1), ("c", 2)]
    assert column(store, board, "doing") == [("x", 0)]


def test_create_defaults_to_first_column(store, board):
    with store.transaction():
        task = create_task(store, board, title="first")
    assert (task.status, task.position) == ("todo", 0)


def test_create_rejects_unknown_status(store, board, add):
    with pytest.raises(InvalidStatusError):
        add("lost", "backlog")


def test_move_across_columns(store, board, add):
    add("t0")
    add("t1")
    t2 = add("t2")
    add("d0", "doing")
    add("d1", "doing")

    move(store, board, t2, "doing", 0)

    assert column(store, board, "doing") == [("t2", 0), ("d0", 1), ("d1", 2)]
    assert column(store, board, "todo") == [("t0", 0), ("t1", 1)]
    assert t2.status == "doing"


def test_move_within_column(store, board, add):
    t0 = add("t0")
    add("t1")
    add("t2")

    move(store, board, t0, position=2)
    assert column(store, board, "todo") == [("t1", 0), ("t2", 1), ("t0", 2)]

    move(store, board, t0, "todo", 0)
    assert column(store, board, "todo") == [("t0", 0), ("t1", 1), ("t2", 2)]


def test_move_clamps_and_appends(store, board, add):
    t0 = add("t0")
    add("d0", "doing")

    move(store, board, t0, "doing", 99)
    assert column(store, board, "doing") == [("d0", 0), ("t0", 1)]

    move(store, board, t0, "todo")
    assert column(store, board, "todo") == [("t0", 0)]
    assert column(store, board, "doing") == [("d0", 0)]


def test_move_to_unknown_status_changes_nothing(store, board, add):
    t0 = add("t0")
    with pytest.raises(InvalidStatusError):
        move(store, board, t0, "archive", 0)
    assert (t0.status, t0.position) == ("todo", 0)


def test_completed_at_follows_done_column(store, board, add):
    task = add("ship")
    assert task.completed_at is None

    move(store, board, task, "done")
    assert task.completed_at is not None
    assert task.completion_percentage == 100

    move(store, board, task, "doing")
    assert task.completed_at is None


def test_ties_break_on_created_at(store, board, add):
    first = add("first")
    second = add("second")
    with store.transaction():
        second.position = 0
        second.created_at = first.created_at + timedelta(seconds=1)
    assert column(store, board, "todo") == [("first", 0), ("second", 0)]

    third = add("third")
    move(store, board, third, position=1)
    assert column(store, board, "todo") == [("first", 0), ("third", 1), ("second", 2)]


def test_archive_and_delete_close_gaps(store, board, add):
    owner = Identity(board.owner_id)
    add("t0")
    t1 = add("t1")
    t2 = add("t2")
    add("t3")

    task_service.toggle_archive_task(store, owner, t1.id)
    assert t1.is_archived and t1.archived_at is not None
    assert column(store, board, "todo") == [("t0", 0), ("t2", 1), ("t3", 2)]

    task_service.delete_task(store, owner, t2.id)
    assert column(store, board, "todo") == [("t0", 0), ("t3", 1)]

    task_service.toggle_archive_task(store, owner, t1.id)
    assert not t1.is_archived
    assert column(store, board, "todo") == [("t0", 0), ("t3", 1), ("t1", 2)]


def test_subtasks_and_comments(store, board, add):
    owner = Identity(board.owner_id)
    task = add("with parts")

    task_service.add_subtask(store, owner, task.id, "one")
    task_service.add_subtask(store, owner, task.id, "two")
    _, subtask = task_service.toggle_subtask(store, owner, task.id, 1)
    assert subtask.completed
    assert task.completion_percentage == 50

    task_service.toggle_subtask(store, owner, task.id, 1)
    assert not task.subtasks[1].completed

    _, comment = task_service.add_comment(store, owner, task.id, " looks good ")
    assert (comment.user_id, comment.content) == (board.owner_id, "looks good")


def test_concurrent_move_is_a_conflict(store, board, add):
    owner = Identity(board.owner_id)
    t0 = add("t0")
    add("t1")
    other = Store(SessionLocal())
    try:
        stale = other.get_task(t0.id)
        assert stale.version == t0.version

        task_service.move_task(store, owner, t0.id, status="doing")

        with pytest.raises(ConflictError) as excinfo:
            task_service.move_task(other, owner, t0.id, position=1)
        assert excinfo.value.status_code == 409
    finally:
        other.session.close()

    store.session.expire_all()
    assert column(store, board, "doing") == [("t0", 0)]
    assert column(store, board, "todo") == [("t1", 0)]
