import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="session")
def app():
    """
    Import the POS FastAPI app once per test session.
    """
    from apps.pos.app.main import app as pos_app

    return pos_app


@pytest.fixture()
def engine():
    """
    Fresh in-memory database per test, shared across the TestClient's
    worker threads.
    """
    from apps.pos.app.db import Base

    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def client(app, engine):
    """
    Synchronous TestClient with the session dependency pointed at the
    per-test database.
    """
    from apps.pos.app.db import get_session

    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _actor(user_id: str, role: str = "staff", shift_role: str = "") -> Dict[str, str]:
    h = {"X-Actor-Id": user_id, "X-Actor-Role": role}
    if shift_role:
        h["X-Shift-Role"] = shift_role
    return h


@pytest.fixture()
def owner() -> Dict[str, str]:
    return _actor("owner-1", role="owner")


@pytest.fixture()
def supervisor() -> Dict[str, str]:
    return _actor("sup-1", shift_role="supervisor")


@pytest.fixture()
def waiter() -> Dict[str, str]:
    return _actor("waiter-1", shift_role="waiter")


@pytest.fixture()
def barista() -> Dict[str, str]:
    return _actor("barista-1", shift_role="barista")


@pytest.fixture()
def shisha() -> Dict[str, str]:
    return _actor("shisha-1", shift_role="shisha")
