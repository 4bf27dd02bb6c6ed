"""Board, column and membership operations.

Each function checks the caller's permission against fresh board state
before changing anything, and commits through ``Store.transaction()``.
"""

from __future__ import annotations

from typing import Any, Optional

from .auth import Identity
from .db import now_utc
from .errors import AuthorizationError, OwnerRemovalError, UserNotFoundError, ValidationError
from .invitations import accept_invitation, create_invitation, decline_invitation
from .models import Board, BoardColumn, Invitation, Member, Task, User
from .ordering import ordered
from .permissions import Action, Role, require_permission
from .storage import Store
from .utils import normalize_email


def register_identity(store: Store, identity: Identity) -> None:
    with store.transaction():
        store.upsert_user(identity.user_id, identity.email, identity.name)


def load_board(store: Store, identity: Identity, board_id: str, action: Action) -> tuple[Board, Role]:
    board = store.get_board(board_id)
    role = require_permission(board, identity.user_id, action)
    return board, role


def _require_column_changes(board: Board, identity: Identity) -> None:
    role = require_permission(board, identity.user_id, Action.WRITE)
    if role is not Role.OWNER and not board.allow_column_modification:
        raise AuthorizationError("Column modification is disabled on this board")


# === Boards ===


def create_board(
    store: Store,
    identity: Identity,
    *,
    title: str,
    description: str = "",
    columns: Optional[list[dict[str, Any]]] = None,
) -> Board:
    with store.transaction():
        board = Board.create(identity.user_id, title, description, columns)
        store.add(board)
    return board


def list_boards(
    store: Store,
    identity: Identity,
    *,
    search: Optional[str] = None,
    archived: bool = False,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Board], int]:
    return store.find_boards(identity.user_id, search=search, archived=archived, page=page, limit=limit)


def get_board(store: Store, identity: Identity, board_id: str) -> tuple[Board, Role, list[Task]]:
    board, role = load_board(store, identity, board_id, Action.READ)
    return board, role, store.find_tasks(board.id)


def update_board(
    store: Store,
    identity: Identity,
    board_id: str,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    settings: Optional[dict[str, Optional[bool]]] = None,
) -> Board:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.MANAGE_SETTINGS)
        if title is not None:
            board.title = title.strip()
        if description is not None:
            board.description = description.strip()
        for attr, value in (settings or {}).items():
            if value is not None:
                setattr(board, attr, value)
        board.touch()
    return board


def toggle_archive_board(store: Store, identity: Identity, board_id: str) -> Board:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.MANAGE_SETTINGS)
        board.is_archived = not board.is_archived
        board.archived_at = now_utc() if board.is_archived else None
        board.touch()
    return board


def delete_board(store: Store, identity: Identity, board_id: str) -> None:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.DELETE)
        store.delete_board(board)


# === Columns ===


def _ensure_columns_empty(store: Store, board: Board, column_ids: set[str]) -> None:
    busy = sorted(cid for cid in column_ids if store.count_active_tasks(board.id, cid))
    if busy:
        raise ValidationError(
            "Columns that still hold tasks cannot be removed",
            details={"columnIds": busy},
        )


def replace_columns(store: Store, identity: Identity, board_id: str, columns: list[dict[str, Any]]) -> Board:
    with store.transaction():
        board = store.get_board(board_id)
        _require_column_changes(board, identity)
        kept = {spec["id"] for spec in columns if spec.get("id")}
        _ensure_columns_empty(store, board, set(board.column_ids) - kept)
        board.replace_columns(columns)
    return board


def add_column(
    store: Store, identity: Identity, board_id: str, name: str, color: Optional[str] = None
) -> tuple[Board, BoardColumn]:
    with store.transaction():
        board = store.get_board(board_id)
        _require_column_changes(board, identity)
        column = board.add_column(name, color)
    return board, column


def remove_column(store: Store, identity: Identity, board_id: str, column_id: str) -> Board:
    with store.transaction():
        board = store.get_board(board_id)
        _require_column_changes(board, identity)
        board.get_column(column_id)
        _ensure_columns_empty(store, board, {column_id})
        board.remove_column(column_id)
    return board


def reorder_columns(store: Store, identity: Identity, board_id: str, column_ids: list[str]) -> Board:
    with store.transaction():
        board = store.get_board(board_id)
        _require_column_changes(board, identity)
        board.reorder_columns(column_ids)
    return board


# === Members ===


def list_members(store: Store, identity: Identity, board_id: str) -> tuple[Board, dict[str, User]]:
    board, _ = load_board(store, identity, board_id, Action.READ)
    return board, store.users_by_id([m.user_id for m in board.members])


def invite(
    store: Store,
    identity: Identity,
    board_id: str,
    email: str,
    role: str,
    *,
    ttl_days: int,
) -> tuple[Invitation, str]:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.INVITE)
        invitation, token = create_invitation(
            store, board, email, role, identity.user_id, ttl_days=ttl_days
        )
    return invitation, token


def accept(store: Store, identity: Identity, token: str) -> tuple[Board, Member]:
    with store.transaction():
        board, member = accept_invitation(store, token, identity.user_id)
    return board, member


def decline(store: Store, identity: Identity, token: str) -> Invitation:
    with store.transaction():
        invitation = decline_invitation(store, token)
    return invitation


def add_member_by_email(store: Store, identity: Identity, board_id: str, email: str, role: str) -> Member:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.INVITE)
        user = store.find_user_by_email(normalize_email(email))
        if user is None:
            raise UserNotFoundError(details={"email": normalize_email(email)})
        member = board.add_member(user.id, role, identity.user_id)
    return member


def remove_member(store: Store, identity: Identity, board_id: str, user_id: str) -> Board:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.READ)
        if user_id == board.owner_id:
            raise OwnerRemovalError()
        require_permission(board, identity.user_id, Action.MANAGE_MEMBERS)
        board.remove_member(user_id)
    return board


def update_member_role(store: Store, identity: Identity, board_id: str, user_id: str, role: str) -> Member:
    with store.transaction():
        board, _ = load_board(store, identity, board_id, Action.MANAGE_MEMBERS)
        member = board.update_member_role(user_id, role)
    return member


# === Export ===


def export_board(store: Store, identity: Identity, board_id: str) -> tuple[Board, list[Task], dict[str, User]]:
    """Read-only snapshot of a board with its members and active tasks."""
    board, _ = load_board(store, identity, board_id, Action.READ)
    tasks = ordered(store.find_tasks(board.id))
    users = store.users_by_id([m.user_id for m in board.members])
    return board, tasks, users


def export_all_boards(
    store: Store, identity: Identity
) -> tuple[list[Board], dict[str, list[Task]], dict[str, User]]:
    """Snapshot every active board the caller owns or belongs to."""
    boards, _ = store.find_boards(identity.user_id, archived=False, limit=None)
    tasks = {board.id: ordered(store.find_tasks(board.id)) for board in boards}
    users = store.users_by_id(
        [identity.user_id] + [m.user_id for board in boards for m in board.members]
    )
    return boards, tasks, users
