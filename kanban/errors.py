"""Domain errors raised by the board and task core.

Every error carries the HTTP status and machine-readable code the API layer
renders; the core itself only raises.
"""

from __future__ import annotations

from typing import Any, Optional


class KanbanError(Exception):
    status_code = 500
    code = "internal_error"
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


# === 400 ===


class ValidationError(KanbanError):
    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"


class DuplicateMemberError(ValidationError):
    code = "duplicate_member"
    default_message = "User is already a member of this board"


class AlreadyMemberError(ValidationError):
    code = "already_member"
    default_message = "A member with this email already belongs to the board"


class DuplicatePendingInvitationError(ValidationError):
    code = "duplicate_pending_invitation"
    default_message = "A pending invitation already exists for this email"


class OwnerRemovalError(ValidationError):
    code = "owner_removal"
    default_message = "The board owner cannot be removed"


class OwnerRoleChangeError(ValidationError):
    code = "owner_role_change"
    default_message = "The board owner's role cannot be changed"


class InvalidOrExpiredInvitationError(ValidationError):
    code = "invalid_or_expired_invitation"
    default_message = "Invitation is invalid or has expired"


class InvalidStatusError(ValidationError):
    code = "invalid_status"
    default_message = "Status does not match any column of the board"


# === 403 ===


class AuthorizationError(KanbanError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action"


# === 404 ===


class NotFoundError(KanbanError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class BoardNotFoundError(NotFoundError):
    code = "board_not_found"
    default_message = "Board not found"


class TaskNotFoundError(NotFoundError):
    code = "task_not_found"
    default_message = "Task not found"


class InvitationNotFoundError(NotFoundError):
    code = "invitation_not_found"
    default_message = "Invitation not found"


class MemberNotFoundError(NotFoundError):
    code = "member_not_found"
    default_message = "Member not found"


class UserNotFoundError(NotFoundError):
    code = "user_not_found"
    default_message = "User not found with this email address"


class SubtaskNotFoundError(NotFoundError):
    code = "subtask_not_found"
    default_message = "Subtask not found"


class ColumnNotFoundError(NotFoundError):
    code = "column_not_found"
    default_message = "Column not found"


# === Concurrency ===


class ConflictError(KanbanError):
    status_code = 409
    code = "conflict"
    default_message = "The resource was modified concurrently, retry with fresh data"


class PreconditionFailedError(KanbanError):
    status_code = 412
    code = "precondition_failed"
    default_message = "Resource version does not match"
