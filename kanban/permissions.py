"""Board roles, the role-permission table and the access evaluator."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, NamedTuple, Optional

from .errors import AuthorizationError, ValidationError

if TYPE_CHECKING:
    from .models import Board


class Role(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class Action(str, enum.Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    INVITE = "invite"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_SETTINGS = "manage_settings"


ROLE_PERMISSIONS: dict[Role, frozenset[Action]] = {
    Role.OWNER: frozenset(Action),
    Role.ADMIN: frozenset({Action.READ, Action.WRITE, Action.INVITE, Action.MANAGE_MEMBERS}),
    Role.MEMBER: frozenset({Action.READ, Action.WRITE}),
    Role.VIEWER: frozenset({Action.READ}),
}

# Roles that can be granted through invitations or role updates.
ASSIGNABLE_ROLES = (Role.ADMIN, Role.MEMBER, Role.VIEWER)


def assignable_role(role: Role | str) -> Role:
    try:
        resolved = Role(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role}") from None
    if resolved is Role.OWNER:
        raise ValidationError("The owner role cannot be assigned")
    return resolved


class Access(NamedTuple):
    has_access: bool
    role: Optional[Role]


def _as_role(value: object) -> Optional[Role]:
    try:
        return Role(value)
    except ValueError:
        return None


def _as_action(value: object) -> Optional[Action]:
    try:
        return Action(value)
    except ValueError:
        return None


def resolve_access(board: Board, user_id: str) -> Access:
    if board.owner_id == user_id:
        return Access(True, Role.OWNER)
    for member in board.members:
        if member.user_id == user_id:
            return Access(True, _as_role(member.role))
    return Access(False, None)


def can_perform(board: Board, user_id: str, action: Action | str) -> bool:
    """Return whether ``user_id`` may perform ``action`` on ``board``.

    Unknown roles and actions are denied.
    """
    access = resolve_access(board, user_id)
    if not access.has_access or access.role is None:
        return False
    resolved = _as_action(action)
    if resolved is None:
        return False
    return resolved in ROLE_PERMISSIONS.get(access.role, frozenset())


def require_permission(board: Board, user_id: str, action: Action) -> Role:
    """Raise ``AuthorizationError`` unless the user may perform ``action``.

    Returns the caller's resolved role.
    """
    access = resolve_access(board, user_id)
    if access.role is None or action not in ROLE_PERMISSIONS.get(access.role, frozenset()):
        raise AuthorizationError(
            details={"action": action.value, "boardId": board.id},
        )
    return access.role
