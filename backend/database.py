"""Async SQLAlchemy engine and session factory for FastAPI."""

import os
import shutil
import sqlite3
import logging
from datetime import datetime
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import event, text

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./instance/nilavu.db",
)

_IS_SQLITE = DATABASE_URL.startswith("sqlite")


class Base(DeclarativeBase):
    pass


def _get_sqlite_path() -> str | None:
    """Return the filesystem path for the SQLite file, or None for non-SQLite URLs."""
    if not _IS_SQLITE or ":memory:" in DATABASE_URL:
        return None
    path = DATABASE_URL.replace("sqlite+aiosqlite:///", "")
    if path.startswith("./"):
        path = os.path.join(os.path.dirname(__file__), path[2:])
    return os.path.abspath(path)


def _is_db_healthy(db_path: str) -> bool:
    """Quick sync integrity check using the stdlib sqlite3 driver."""
    try:
        con = sqlite3.connect(db_path, timeout=3)
        result = con.execute("PRAGMA integrity_check;").fetchone()
        con.close()
        return bool(result) and result[0] == "ok"
    except sqlite3.Error:
        return False


def _ensure_healthy_db() -> None:
    """
    Called once at import.  Creates the parent directory of the SQLite file and,
    if an existing file fails the integrity check, moves it aside so the schema
    is recreated from scratch on the next init_db().
    """
    db_path = _get_sqlite_path()
    if not db_path:
        return
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    if not os.path.exists(db_path):
        return

    wal_path = db_path + "-wal"
    if os.path.exists(wal_path):
        try:
            con = sqlite3.connect(db_path, timeout=5)
            con.execute("PRAGMA wal_checkpoint(FULL)")
            con.close()
            logger.info("database.wal_checkpoint.ok")
        except sqlite3.Error as wal_exc:
            logger.warning("database.wal_checkpoint.failed: %s", wal_exc)

    if not _is_db_healthy(db_path):
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = f"{db_path}.corrupted_{ts}"
        shutil.move(db_path, backup_path)
        logger.error("database.disk_image_malformed — moved to %s, fresh schema will be created", backup_path)


_ensure_healthy_db()

engine = create_async_engine(
    DATABASE_URL,
    # check_same_thread is a SQLite-only option
    connect_args={"check_same_thread": False} if _IS_SQLITE else {},
    echo=False,
)

if _IS_SQLITE:
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _record):
        # ON DELETE CASCADE is ignored by SQLite unless enabled per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    """Create all tables and enable WAL mode for SQLite."""
    async with engine.begin() as conn:
        if _IS_SQLITE:
            try:
                await conn.execute(text("PRAGMA journal_mode=WAL"))
            except Exception as wal_exc:
                logger.warning("database.wal_mode.failed (non-fatal): %s", wal_exc)
        from models_async import Base as ModelsBase  # noqa: F401
        await conn.run_sync(ModelsBase.metadata.create_all)
