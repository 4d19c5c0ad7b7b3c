"""SQLite engine and session factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import Engine

MEMORY = ":memory:"
BUSY_TIMEOUT_MS = 30_000

# Claims and step results reference deployments; SQLite only enforces that per connection
_CONNECTION_PRAGMAS = (
    f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}",
    "PRAGMA foreign_keys=ON",
)
_FILE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
)


def sqlite_url(db_path: str | Path) -> str:
    path = str(db_path)
    return "sqlite://" if path == MEMORY else f"sqlite:///{path}"


def create_db_engine(db_path: str | Path, echo: bool = False) -> Engine:
    """Engine for a SQLite file, or a single shared connection for ``:memory:``."""
    in_memory = str(db_path) == MEMORY
    if in_memory:
        engine = create_engine(
            sqlite_url(db_path),
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            sqlite_url(db_path),
            echo=echo,
            connect_args={"timeout": BUSY_TIMEOUT_MS / 1000},
        )
    pragmas = _CONNECTION_PRAGMAS if in_memory else _CONNECTION_PRAGMAS + _FILE_PRAGMAS

    @event.listens_for(engine, "connect")
    def _apply_pragmas(dbapi_conn: object, _connection_record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        for pragma in pragmas:
            cursor.execute(pragma)
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)
