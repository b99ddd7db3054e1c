import os
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


DB_URL = _env_or("POS_DB_URL", _env_or("DB_URL", "sqlite+pysqlite:////tmp/ahwa-pos.db"))
DB_SCHEMA = os.getenv("DB_SCHEMA") if not DB_URL.startswith("sqlite") else None


class Base(DeclarativeBase):
    pass


def make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, future=True, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, future=True)


def supports_row_locks(s: Session) -> bool:
    bind = s.get_bind()
    return bind.dialect.name != "sqlite"


engine = make_engine(DB_URL)


def get_session() -> Iterator[Session]:
    with Session(engine) as s:
        yield s


def utcnow() -> datetime:
    # Naive UTC keeps SQLite and Postgres comparisons consistent.
    return datetime.now(timezone.utc).replace(tzinfo=None)
