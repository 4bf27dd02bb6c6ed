from datetime import timedelta

import pytest

from kanban.db import SessionLocal, now_utc
from kanban.errors import (
    AlreadyMemberError,
    DuplicatePendingInvitationError,
    InvalidOrExpiredInvitationError,
    InvitationNotFoundError,
    ValidationError,
)
from kanban.invitations import accept_invitation, create_invitation, decline_invitation
from kanban.storage import Store
from kanban.utils import sha256_hex


def invite(store, board, email="x@example.com", role="member", **kwargs):
    with store.transaction():
        return create_invitation(store, board, email, role, board.owner_id, **kwargs)


def test_create_then_accept(store, make_board):
    board = make_board()
    invitation, token = invite(store, board, "  X@Example.com ", "admin")
    assert invitation.email == "x@example.com"
    assert invitation.status == "pending"

    with store.transaction():
        accepted_board, member = accept_invitation(store, token, "user-2")

    assert accepted_board.id == board.id
    assert (member.user_id, member.role, member.invited_by) == ("user-2", "admin", board.owner_id)
    assert invitation.status == "accepted"


def test_second_accept_fails(store, make_board):
    board = make_board()
    _, token = invite(store, board)
    with store.transaction():
        accept_invitation(store, token, "user-2")

    with pytest.raises(InvalidOrExpiredInvitationError):
        with store.transaction():
            accept_invitation(store, token, "user-3")
    assert board.find_member("user-3") is None


def test_token_is_stored_as_digest(store, make_board):
    board = make_board()
    invitation, token = invite(store, board)
    assert len(token) >= 43
    assert invitation.token_hash == sha256_hex(token)
    assert store.find_invitation_by_token(token) is invitation
    assert store.find_invitation_by_token(token + "x") is None


def test_expiry_defaults_to_seven_days(store, make_board):
    board = make_board()
    now = now_utc()
    invitation, _ = invite(store, board, now=now)
    assert invitation.expires_at == now + timedelta(days=7)

    other, _ = invite(store, board, "y@example.com", ttl_days=2, now=now)
    assert other.expires_at == now + timedelta(days=2)


def test_duplicate_pending_invitation(store, make_board):
    board = make_board()
    invite(store, board)
    with pytest.raises(DuplicatePendingInvitationError):
        invite(store, board, "X@EXAMPLE.COM")


def test_expired_invitation_cannot_be_accepted_but_can_be_reissued(store, make_board):
    board = make_board()
    invitation, token = invite(store, board)
    with store.transaction():
        invitation.expires_at = now_utc() - timedelta(minutes=1)

    assert invitation.effective_status(now_utc()) == "expired"
    with pytest.raises(InvalidOrExpiredInvitationError):
        with store.transaction():
            accept_invitation(store, token, "user-2")

    fresh, _ = invite(store, board)
    assert fresh.status == "pending"


def test_existing_member_cannot_be_invited(store, make_board):
    board = make_board()
    with store.transaction():
        store.upsert_user("user-2", "x@example.com", "Xavier")
        board.add_member("user-2", "member", board.owner_id)

    with pytest.raises(AlreadyMemberError):
        invite(store, board, "x@example.com")


def test_owner_role_cannot_be_invited(store, make_board):
    board = make_board()
    with pytest.raises(ValidationError):
        invite(store, board, role="owner")


def test_decline(store, make_board):
    board = make_board()
    invitation, token = invite(store, board)
    with store.transaction():
        decline_invitation(store, token)
    assert invitation.status == "declined"

    with pytest.raises(InvalidOrExpiredInvitationError):
        with store.transaction():
            accept_invitation(store, token, "user-2")

    # A declined invitation no longer blocks a new one.
    invite(store, board)


def test_decline_unknown_token(store):
    with pytest.raises(InvitationNotFoundError):
        with store.transaction():
            decline_invitation(store, "nope")


def test_racing_accepts_let_only_one_through(store, make_board):
    board = make_board()
    _, token = invite(store, board)
    first, second = Store(SessionLocal()), Store(SessionLocal())
    try:
        # Both requests have read the invitation while it was still pending.
        assert first.find_invitation_by_token(token).status == "pending"
        assert second.find_invitation_by_token(token).status == "pending"

        with first.transaction():
            accept_invitation(first, token, "user-2")

        with pytest.raises(InvalidOrExpiredInvitationError):
            with second.transaction():
                accept_invitation(second, token, "user-3")
    finally:
        first.session.close()
        second.session.close()

    store.session.expire_all()
    assert [m.user_id for m in board.members] == [board.owner_id, "user-2"]
    assert store.find_invitation_by_token(token).status == "accepted"
