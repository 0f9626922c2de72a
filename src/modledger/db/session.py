"""Database session configuration."""

from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from modledger.core.errors import StoreUnavailableError
from modledger.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import modledger.models  # noqa: E402,F401


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"pool_pre_ping": True, "echo": settings.sql_debug}
    if not url.startswith("sqlite"):
        options["pool_timeout"] = settings.db_pool_timeout_seconds
    return options


engine = create_engine(
    settings.effective_database_url,
    **_engine_options(settings.effective_database_url),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

SessionFactory = Callable[[], Session]


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(session_factory: SessionFactory) -> Iterator[Session]:
    """Run a block inside a single store transaction.

    The transaction commits when the block exits normally and rolls back on any
    exception. Connectivity failures are re-raised as ``StoreUnavailableError``
    so callers can retry the whole intent knowing nothing was committed.
    """
    try:
        with session_factory() as db, db.begin():
            yield db
    except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
        raise StoreUnavailableError(f"durable store unavailable: {exc}") from exc


def create_tables() -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    """Drop all database tables."""
    Base.metadata.drop_all(bind=engine)
