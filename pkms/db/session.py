"""Engine and session factories for pkms."""

from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pkms.core.config import get_settings


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, allowing SQLite connections to cross threads."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, pool_pre_ping=True, connect_args=connect_args)


def make_session_factory(url: Optional[str] = None) -> sessionmaker:
    """Build a sessionmaker bound to ``url`` (the catalog database by default)."""
    settings = get_settings()
    engine = make_engine(url or settings.database_url, echo=settings.sql_echo)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


_session_factory: Optional[sessionmaker] = None


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory()
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a catalog session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
