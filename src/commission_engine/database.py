"""Database connection and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from commission_engine.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def get_engine() -> Engine:
    """Create database engine."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
    )


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db() -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = sessionmaker(
            _engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def is_postgres(session: Session) -> bool:
    """Whether the session is bound to a PostgreSQL database."""
    return session.get_bind().dialect.name == "postgresql"


def try_advisory_xact_lock(session: Session, key: str) -> bool:
    """Try to take a transaction-scoped advisory lock (PostgreSQL only).

    The lock is released automatically at commit or rollback.
    Returns True if lock acquired, False if already held.
    """
    result = session.execute(
        text("SELECT pg_try_advisory_xact_lock(hashtext(:key))"),
        {"key": key},
    )
    return bool(result.scalar())


def set_statement_timeout(session: Session, timeout_ms: int) -> None:
    """Bound statement duration for the current transaction (PostgreSQL only)."""
    if is_postgres(session):
        session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


def dialect_insert(session: Session, table: Any) -> Any:
    """INSERT construct supporting ON CONFLICT for the bound dialect."""
    if is_postgres(session):
        return postgresql.insert(table)
    return sqlite.insert(table)
