"""Database configuration and helpers for the ForceFlow service."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DATABASE_URL = os.getenv("FORCEFLOW_DB_URL", "sqlite:///./forceflow.db")

Base = declarative_base()

logger = logging.getLogger("forceflow.db")


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite connections may be shared across worker threads."""

    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form stored in every table."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db() -> Generator:
    """Yield a SQLAlchemy session and ensure it is closed."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create database tables if they do not exist."""

    import forceflow.db_models  # noqa: F401 - models are imported for side effects

    Base.metadata.create_all(bind=bind or engine)


def dialect_insert(db: Session, model):
    """Return an INSERT construct that supports ``ON CONFLICT`` for the session's backend."""

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Upserts are not supported on the {dialect} dialect")
    return insert(model)
