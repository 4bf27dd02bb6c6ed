import pytest

from kanban.errors import (
    ColumnNotFoundError,
    DuplicateMemberError,
    MemberNotFoundError,
    OwnerRemovalError,
    OwnerRoleChangeError,
    ValidationError,
)
from kanban.models import DEFAULT_COLUMN_COLOR, Board


def orders(board: Board) -> list[int]:
    return [c.order for c in board.sorted_columns]


def test_create_enrolls_owner_and_default_columns():
    board = Board.create("owner", "  Launch  ")
    assert board.title == "Launch"
    assert [(m.user_id, m.role) for m in board.members] == [("owner", "owner")]
    assert board.column_ids == ["todo", "in-progress", "done"]
    assert [c.color for c in board.sorted_columns] == ["#6B7280", "#3B82F6", "#10B981"]
    assert orders(board) == [0, 1, 2]


def test_create_with_custom_columns():
    board = Board.create(
        "owner",
        "Custom",
        columns=[{"id": "b", "name": "Second", "order": 5}, {"id": "a", "name": "First", "order": 1}],
    )
    assert board.column_ids == ["a", "b"]
    assert orders(board) == [0, 1]
    assert board.get_column("a").color == DEFAULT_COLUMN_COLOR


def test_add_member_rejects_duplicates():
    board = Board.create("owner", "Team")
    board.add_member("alice", "member", "owner")
    with pytest.raises(DuplicateMemberError):
        board.add_member("alice", "viewer", "owner")
    with pytest.raises(DuplicateMemberError):
        board.add_member("owner", "admin", "owner")


def test_add_member_cannot_grant_owner():
    board = Board.create("owner", "Team")
    with pytest.raises(ValidationError):
        board.add_member("alice", "owner", "owner")


def test_remove_member():
    board = Board.create("owner", "Team")
    board.add_member("alice", "member", "owner")
    board.remove_member("alice")
    assert board.find_member("alice") is None
    with pytest.raises(MemberNotFoundError):
        board.remove_member("alice")


def test_owner_cannot_be_removed_or_demoted():
    board = Board.create("owner", "Team")
    with pytest.raises(OwnerRemovalError):
        board.remove_member("owner")
    with pytest.raises(OwnerRoleChangeError):
        board.update_member_role("owner", "admin")
    assert board.find_member("owner").role == "owner"


def test_update_member_role():
    board = Board.create("owner", "Team")
    board.add_member("alice", "viewer", "owner")
    assert board.update_member_role("alice", "admin").role == "admin"
    with pytest.raises(MemberNotFoundError):
        board.update_member_role("bob", "admin")
    with pytest.raises(ValidationError):
        board.update_member_role("alice", "owner")


def test_column_mutations_keep_orders_contiguous():
    board = Board.create("owner", "Columns")
    review = board.add_column("Review", "#FF0000")
    assert board.column_ids[-1] == review.id
    assert review.id.startswith("column-")

    board.remove_column("in-progress")
    assert board.column_ids == ["todo", "done", review.id]
    assert orders(board) == [0, 1, 2]

    board.reorder_columns([review.id, "done", "todo"])
    assert board.column_ids == [review.id, "done", "todo"]
    assert orders(board) == [0, 1, 2]


def test_column_mutation_errors():
    board = Board.create("owner", "Columns", columns=[{"id": "only", "name": "Only"}])
    with pytest.raises(ValidationError):
        board.remove_column("only")
    with pytest.raises(ColumnNotFoundError):
        board.remove_column("missing")
    with pytest.raises(ValidationError):
        board.reorder_columns(["only", "only"])
    with pytest.raises(ValidationError):
        board.replace_columns([{"id": "x", "name": "X"}, {"id": "x", "name": "Y"}])
    with pytest.raises(ValidationError):
        board.replace_columns([])
