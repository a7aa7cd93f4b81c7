from __future__ import annotations

from pathlib import Path
from typing import Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def _ensure_sqlite_dirs(url: str) -> None:
    if not url.startswith("sqlite:///") or url == "sqlite:///:memory:":
        return
    path = url.replace("sqlite:///", "", 1)
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def build_sqlite_url(db_path: str | Path) -> str:
    path = Path(db_path)
    return f"sqlite:///{path}"


def normalize_db_url(db_url: str | Path) -> str:
    """Accept a plain file path, a sqlite URL, or a postgres URL (preferring the psycopg driver)."""
    db_url = str(db_url)
    if "://" not in db_url:
        return build_sqlite_url(db_url)
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    if db_url.startswith("postgresql://") and "+psycopg" not in db_url and "+psycopg2" not in db_url:
        try:
            import psycopg  # type: ignore  # noqa: F401
            db_url = db_url.replace("postgresql://", "postgresql+psycopg://", 1)
        except ImportError:
            pass
    return db_url


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_and_session(db_url: str | Path) -> Tuple[Engine, sessionmaker]:
    db_url = normalize_db_url(db_url)
    _ensure_sqlite_dirs(db_url)
    engine = create_engine(db_url, future=True, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    return engine, SessionLocal
