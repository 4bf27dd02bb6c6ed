"""Email invitations: creation, acceptance and decline.

Expiry is evaluated lazily; nothing flips a pending invitation to
``expired`` in the background, ``expires_at > now`` is simply checked
wherever a pending invitation is used.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .db import now_utc
from .errors import (
    AlreadyMemberError,
    DuplicatePendingInvitationError,
    InvalidOrExpiredInvitationError,
    InvitationNotFoundError,
)
from .models import Board, Invitation, Member
from .permissions import Role, assignable_role
from .storage import Store
from .utils import new_token, normalize_email, sha256_hex

DEFAULT_TTL_DAYS = 7


def create_invitation(
    store: Store,
    board: Board,
    email: str,
    role: Role | str,
    invited_by: str,
    *,
    ttl_days: int = DEFAULT_TTL_DAYS,
    now: Optional[datetime] = None,
) -> tuple[Invitation, str]:
    """Create a pending invitation and return it with its raw token.

    Only a digest of the token is stored, so the returned value is the one
    chance to hand it to the invitee.
    """
    now = now or now_utc()
    email = normalize_email(email)
    resolved = assignable_role(role)

    if store.find_member_by_email(board.id, email) is not None:
        raise AlreadyMemberError(details={"email": email})
    if board.pending_invitation_for(email, now) is not None:
        raise DuplicatePendingInvitationError(details={"email": email})

    token = new_token()
    invitation = Invitation(
        email=email,
        role=resolved.value,
        token_hash=sha256_hex(token),
        invited_by=invited_by,
        invited_at=now,
        expires_at=now + timedelta(days=ttl_days),
        status="pending",
    )
    board.invitations.append(invitation)
    board.touch()
    return invitation, token


def accept_invitation(
    store: Store,
    token: str,
    user_id: str,
    *,
    now: Optional[datetime] = None,
) -> tuple[Board, Member]:
    """Consume ``token`` and enrol ``user_id`` with the invited role.

    Must run inside ``store.transaction()``: the status flip and the new
    membership are committed together or rolled back together.
    """
    now = now or now_utc()
    invitation = store.find_invitation_by_token(token)
    if invitation is None or not invitation.is_usable(now):
        raise InvalidOrExpiredInvitationError()
    if not store.claim_invitation(invitation, now):
        raise InvalidOrExpiredInvitationError()

    board = invitation.board
    member = board.add_member(user_id, invitation.role, invitation.invited_by)
    return board, member


def decline_invitation(store: Store, token: str) -> Invitation:
    invitation = store.find_invitation_by_token(token)
    if invitation is None:
        raise InvitationNotFoundError()
    invitation.status = "declined"
    invitation.board.touch()
    return invitation
