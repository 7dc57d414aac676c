"""Database engine and session factory."""

from typing import Any

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import sessionmaker

from media_engine.config import settings


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    Repositories call sessions from worker threads, so SQLite connections
    must be shareable across threads.
    """
    options: dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_size=5, max_overflow=10)
    return create_engine(url, **options)


engine = build_engine(settings.database_url)

# Task rows are handed back to async callers after the session closes
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def ping_database() -> None:
    """Raise if the database cannot be reached."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
