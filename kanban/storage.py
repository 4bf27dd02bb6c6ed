from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Sequence

from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from .errors import BoardNotFoundError, ConflictError, TaskNotFoundError
from .models import Board, Invitation, Member, Task, User
from .utils import sha256_hex


class Store:
    """Board and task persistence on top of a single SQLAlchemy session.

    One ``Store`` serves one request; ``transaction()`` is the unit of work
    that either commits every pending change or none of them.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator[Store]:
        try:
            yield self
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            raise ConflictError() from exc
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(details={"reason": str(exc.orig)}) from exc
        except Exception:
            self.session.rollback()
            raise

    def add(self, entity: object) -> None:
        self.session.add(entity)

    def delete(self, entity: object) -> None:
        self.session.delete(entity)

    # === Users ===

    def upsert_user(self, user_id: str, email: Optional[str], name: Optional[str]) -> User:
        if email:
            holder = self.find_user_by_email(email)
            if holder is not None and holder.id != user_id:
                # Emails stay unique; the first identity to claim one keeps it.
                email = None
        user = self.session.get(User, user_id)
        if user is None:
            user = User(id=user_id, email=email, name=name)
            self.session.add(user)
            return user
        if email and user.email != email:
            user.email = email
        if name and user.name != name:
            user.name = name
        return user

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.session.scalars(select(User).where(User.email == email)).first()

    def users_by_id(self, user_ids: Sequence[str]) -> dict[str, User]:
        if not user_ids:
            return {}
        users = self.session.scalars(select(User).where(User.id.in_(set(user_ids))))
        return {user.id: user for user in users}

    # === Boards ===

    def get_board(self, board_id: str) -> Board:
        board = self.session.get(Board, board_id)
        if board is None:
            raise BoardNotFoundError(details={"boardId": board_id})
        return board

    def find_boards(
        self,
        user_id: str,
        *,
        search: Optional[str] = None,
        archived: bool = False,
        page: int = 1,
        limit: Optional[int] = 10,
    ) -> tuple[list[Board], int]:
        """Boards the user owns or belongs to, newest activity first.

        ``limit=None`` returns every match.
        """
        is_member = exists().where(Member.board_id == Board.id, Member.user_id == user_id)
        stmt = select(Board).where(
            or_(Board.owner_id == user_id, is_member),
            Board.is_archived == archived,
        )
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Board.title.ilike(pattern), Board.description.ilike(pattern)))

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = stmt.order_by(Board.updated_at.desc())
        if limit is not None:
            stmt = stmt.offset((page - 1) * limit).limit(limit)
        boards = self.session.scalars(stmt).all()
        return list(boards), total

    def find_member_by_email(self, board_id: str, email: str) -> Optional[Member]:
        stmt = (
            select(Member)
            .join(User, User.id == Member.user_id)
            .where(Member.board_id == board_id, User.email == email)
        )
        return self.session.scalars(stmt).first()

    def delete_board(self, board: Board) -> None:
        self.delete_tasks_for_board(board.id)
        # Task rows have no mapped relationship to the board, so flush them first.
        self.session.flush()
        self.session.delete(board)

    # === Invitations ===

    def find_invitation_by_token(self, token: str) -> Optional[Invitation]:
        stmt = select(Invitation).where(Invitation.token_hash == sha256_hex(token))
        return self.session.scalars(stmt).first()

    def claim_invitation(self, invitation: Invitation, now: datetime) -> bool:
        """Flip a pending, unexpired invitation to accepted.

        The status check is part of the UPDATE itself, so only one caller
        can win the transition.
        """
        result = self.session.execute(
            update(Invitation)
            .where(
                Invitation.id == invitation.id,
                Invitation.status == "pending",
                Invitation.expires_at > now,
            )
            .values(status="accepted")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        set_committed_value(invitation, "status", "accepted")
        return True

    # === Tasks ===

    def get_task(self, task_id: str, *, include_archived: bool = False) -> Task:
        task = self.session.get(Task, task_id)
        if task is None or (task.is_archived and not include_archived):
            raise TaskNotFoundError(details={"taskId": task_id})
        return task

    def column_tasks(self, board_id: str, status: str) -> list[Task]:
        """Active tasks of one column in display order."""
        stmt = (
            select(Task)
            .where(Task.board_id == board_id, Task.status == status, Task.is_archived.is_(False))
            .order_by(Task.position, Task.created_at, Task.id)
        )
        return list(self.session.scalars(stmt))

    def max_position(self, board_id: str, status: str) -> Optional[int]:
        return self.session.scalar(
            select(func.max(Task.position)).where(
                Task.board_id == board_id,
                Task.status == status,
                Task.is_archived.is_(False),
            )
        )

    def count_active_tasks(self, board_id: str, status: str) -> int:
        return self.session.scalar(
            select(func.count(Task.id)).where(
                Task.board_id == board_id,
                Task.status == status,
                Task.is_archived.is_(False),
            )
        ) or 0

    def find_tasks(
        self,
        board_id: str,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        labels: Optional[Sequence[str]] = None,
        assignee: Optional[str] = None,
        search: Optional[str] = None,
        include_archived: bool = False,
    ) -> list[Task]:
        stmt = select(Task).where(Task.board_id == board_id)
        if not include_archived:
            stmt = stmt.where(Task.is_archived.is_(False))
        if status:
            stmt = stmt.where(Task.status == status)
        if priority:
            stmt = stmt.where(Task.priority == priority)
        if assignee:
            stmt = stmt.where(Task.assignee == assignee)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
        tasks = self.session.scalars(stmt.order_by(Task.position, Task.created_at, Task.id)).all()
        if labels:
            wanted = set(labels)
            tasks = [t for t in tasks if wanted.intersection(t.labels or [])]
        return list(tasks)

    def delete_tasks_for_board(self, board_id: str) -> int:
        tasks = self.session.scalars(select(Task).where(Task.board_id == board_id)).all()
        for task in tasks:
            self.session.delete(task)
        return len(tasks)
