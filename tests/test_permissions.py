import pytest

from kanban.errors import AuthorizationError, ValidationError
from kanban.models import Board, Member
from kanban.permissions import (
    Action,
    Role,
    assignable_role,
    can_perform,
    require_permission,
    resolve_access,
)


@pytest.fixture
def board() -> Board:
    board = Board.create("owner", "Permissions")
    board.add_member("admin", "admin", "owner")
    board.add_member("member", "member", "owner")
    board.add_member("viewer", "viewer", "owner")
    return board


def test_owner_can_do_everything(board):
    assert all(can_perform(board, "owner", action) for action in Action)


@pytest.mark.parametrize(
    "user_id, allowed",
    [
        ("admin", {Action.READ, Action.WRITE, Action.INVITE, Action.MANAGE_MEMBERS}),
        ("member", {Action.READ, Action.WRITE}),
        ("viewer", {Action.READ}),
    ],
)
def test_permission_table(board, user_id, allowed):
    for action in Action:
        assert can_perform(board, user_id, action) is (action in allowed)


def test_viewer_cannot_write(board):
    assert not can_perform(board, "viewer", Action.WRITE)
    assert not can_perform(board, "viewer", "write")


def test_owner_resolved_from_owner_id_first(board):
    # Even a stale member row cannot downgrade the owner.
    board.members[0].role = "viewer"
    assert resolve_access(board, "owner") == (True, Role.OWNER)


def test_outsider_has_no_access(board):
    assert resolve_access(board, "stranger") == (False, None)
    assert not can_perform(board, "stranger", Action.READ)


def test_unknown_role_and_action_are_denied(board):
    board.members.append(Member(user_id="odd", role="superuser"))
    assert resolve_access(board, "odd") == (True, None)
    assert not can_perform(board, "odd", Action.READ)
    assert not can_perform(board, "member", "launch")


def test_require_permission(board):
    assert require_permission(board, "admin", Action.INVITE) is Role.ADMIN
    with pytest.raises(AuthorizationError) as excinfo:
        require_permission(board, "member", Action.DELETE)
    assert excinfo.value.details == {"action": "delete", "boardId": board.id}


@pytest.mark.parametrize("role", ["owner", "superuser", ""])
def test_assignable_role_rejects(role):
    with pytest.raises(ValidationError):
        assignable_role(role)


def test_assignable_role_accepts_strings():
    assert assignable_role("viewer") is Role.VIEWER
