"""Pytest configuration shared across tests."""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read at import time; point them at a private in-memory database.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from kanban.auth import Identity  # noqa: E402
from kanban.db import SessionLocal, drop_db, init_db  # noqa: E402
from kanban.main import app  # noqa: E402
from kanban.models import Board  # noqa: E402
from kanban.storage import Store  # noqa: E402

OWNER = Identity(user_id="owner-1", email="owner@example.com", name="Olive Owner")


def auth(user_id: str, email: str | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {user_id}"}
    if email:
        headers["X-User-Email"] = email
    return headers


@pytest.fixture(autouse=True)
def fresh_db():
    drop_db()
    init_db()
    yield


@pytest.fixture
def session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(session) -> Store:
    return Store(session)


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_board(store):
    def _make(owner: Identity = OWNER, title: str = "Roadmap", columns=None) -> Board:
        with store.transaction():
            store.upsert_user(owner.user_id, owner.email, owner.name)
            board = Board.create(owner.user_id, title, columns=columns)
            store.add(board)
        return board

    return _make
