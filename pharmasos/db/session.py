"""Database session management."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from pharmasos.core.config import settings
from pharmasos.db.base import Base


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine. SQLite connections are shared across threads and
    wait up to 30s on a locked database instead of failing."""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        return create_engine(url, connect_args=connect_args, **kwargs)
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = build_engine(settings.database_url, echo=settings.debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet. Runs on app startup."""
    import pharmasos.models  # noqa: F401 - register models on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Dependency for FastAPI to get DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
