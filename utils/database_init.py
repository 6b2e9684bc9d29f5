import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

DATABASE_FILENAME = "app.db"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS exploration_session (
        session_id TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversation_turn (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        user_name TEXT NOT NULL,
        turn_order INTEGER NOT NULL,
        user_utterance TEXT NOT NULL,
        ai_utterance TEXT NOT NULL,
        interests TEXT NOT NULL DEFAULT '[]',
        created_at INTEGER NOT NULL,
        UNIQUE (session_id, turn_order)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS topic_metadata (
        topic TEXT PRIMARY KEY,
        image_ref TEXT NOT NULL,
        thumbnail_ref TEXT,
        steps TEXT NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS drawing_guide (
        session_id TEXT NOT NULL,
        topic TEXT NOT NULL,
        image_ref TEXT NOT NULL,
        steps TEXT NOT NULL,
        evaluation TEXT,
        created_at INTEGER NOT NULL,
        PRIMARY KEY (session_id, topic)
    )
    """,
)


def _resolve_db_dir(parent_folder: Optional[Path | str]) -> Path:
    """Return the directory holding the database, creating it if needed.

    Raises:
        RuntimeError: If no directory is configured, it is a file, or it
            cannot be created.
    """
    configured = str(parent_folder) if parent_folder is not None else os.getenv("DATABASE_DIR", "")
    if not configured.strip():
        raise RuntimeError("DATABASE_DIR must point to a writable directory for the SQLite database.")

    db_dir = Path(configured).expanduser()
    if db_dir.exists() and not db_dir.is_dir():
        raise RuntimeError(f"DATABASE_DIR={configured!r} is a file, not a directory.")
    try:
        db_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Cannot create database directory {db_dir}") from exc
    return db_dir


class AsyncDatabaseInitializer:
    """
    Own the SQLite file for sessions, conversation turns, topic metadata and
    drawing guides, at `<DATABASE_DIR>/app.db` (or `<parent_folder>/app.db`).

    Tables are created on first use and existing rows are kept, so sessions
    and the shared topic cache survive restarts.
    """

    def __init__(self, parent_folder: Optional[Path | str] = None) -> None:
        self.db_dir = _resolve_db_dir(parent_folder)
        self.db_path = self.db_dir / DATABASE_FILENAME
        self._initialized = False

    async def ensure_database(self) -> None:
        """Create any missing table. Later calls on the same instance do nothing."""
        if self._initialized:
            return

        attempts = 3
        for attempt in range(1, attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL;")
                    for statement in SCHEMA:
                        await db.execute(statement)
                    await db.commit()
                break
            except FileNotFoundError:
                # transient on some filesystems right after mkdir
                if attempt == attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an `aiosqlite.Connection`, creating the tables on first use."""
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection whose writes commit together, or not at all."""
        async with self.connection() as conn:
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()
