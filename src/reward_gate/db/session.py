"""Database session configuration."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from reward_gate.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import reward_gate.models  # noqa: E402,F401


def _engine_options(url: str) -> dict[str, Any]:
    """Return driver options that bound every store round-trip."""
    if url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.db_connect_timeout_seconds,
            },
        }
    options: dict[str, Any] = {"pool_timeout": settings.db_pool_timeout_seconds}
    if url.startswith("postgresql"):
        options["connect_args"] = {"connect_timeout": int(settings.db_connect_timeout_seconds)}
    return options


engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    **_engine_options(settings.effective_database_url),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
