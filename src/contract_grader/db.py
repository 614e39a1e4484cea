"""SQLite run store: engine, sessions and schema.

The store holds four tables: ``api`` (one row per API identity), ``run`` (one
row per recorded grading, with the full JSON report), and the per-run
``finding`` and ``checkpoint_score`` rows used by history and violation
queries. The file lives at ``$DATA_DIR/grader.db`` (``~/.contract-grader``
when DATA_DIR is unset).

Foreign keys are enforced so finding and checkpoint rows can never outlive
their run. WAL mode lets history queries read while a run is being recorded.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "~/.contract-grader"
DB_FILENAME = "grader.db"


def get_data_dir() -> Path:
    """The DATA_DIR directory, created on first use."""
    data_dir = Path(os.environ.get("DATA_DIR") or DEFAULT_DATA_DIR).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    return get_data_dir() / DB_FILENAME


def get_db_url() -> str:
    return f"sqlite+aiosqlite:///{get_db_path()}"


def _on_connect(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_engine = None
_session_factory = None


def get_engine():
    """The process-wide engine for the current DATA_DIR."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_db_url(), echo=False)
        event.listen(_engine.sync_engine, "connect", _on_connect)
        logger.debug("Opened run store at %s", get_db_path())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def init_db() -> list[str]:
    """Create any missing run store tables and return the table names."""
    from .sqlmodels import Base

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    tables = sorted(Base.metadata.tables)
    logger.info("Run store ready at %s (tables: %s)", get_db_path(), ", ".join(tables))
    return tables


async def close_db():
    """Dispose of the engine; the next access reopens against the current DATA_DIR."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        logger.debug("Closed run store")
        _engine = None
        _session_factory = None
