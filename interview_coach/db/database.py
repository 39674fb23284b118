"""Database initialization and connection management."""
import logging
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS sessions (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL,
        data        TEXT NOT NULL,
        created_at  TEXT DEFAULT (datetime('now')),
        updated_at  TEXT DEFAULT (datetime('now'))
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);

    CREATE TABLE IF NOT EXISTS session_history (
        id               TEXT PRIMARY KEY,
        owner            TEXT NOT NULL,
        session_id       TEXT NOT NULL,
        timestamp        REAL NOT NULL,
        role             TEXT NOT NULL,
        job_description  TEXT,
        score            INTEGER NOT NULL,
        questions_count  INTEGER NOT NULL,
        session_data     TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_history_owner ON session_history(owner, timestamp);
    CREATE INDEX IF NOT EXISTS idx_history_session ON session_history(session_id);
"""


class Database:
    """One shared aiosqlite connection with the coach schema applied."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        await conn.executescript(SCHEMA)
        await conn.commit()
        self._conn = conn
        return conn

    async def close(self):
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> int:
        """Run a write and commit it. Returns the number of affected rows."""
        conn = await self.connect()
        cursor = await conn.execute(query, params)
        await conn.commit()
        return cursor.rowcount

    async def fetchone(self, query: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        rows = await self.fetchall(query, params)
        return rows[0] if rows else None

    async def fetchall(self, query: str, params: tuple = ()) -> list[aiosqlite.Row]:
        conn = await self.connect()
        async with conn.execute(query, params) as cursor:
            return list(await cursor.fetchall())


async def init_database(db_path: str = "data/interview_coach.db") -> Database:
    """Open the database at db_path, creating the file and schema if missing."""
    db = Database(db_path)
    await db.connect()
    logger.info("Database ready at %s", db_path)
    return db


# Global database instance (set by the entry point)
db: Optional[Database] = None


def get_db() -> Database:
    """Get global database instance."""
    if db is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return db
