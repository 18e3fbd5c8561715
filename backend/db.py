"""
SQLite database helpers for users, sessions and short-lived tokens.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from datetime import datetime, timezone
from typing import AsyncIterator

import aiosqlite

from config import DB_PATH

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    username      TEXT    NOT NULL UNIQUE,
    email         TEXT    NOT NULL UNIQUE COLLATE NOCASE,
    password_hash TEXT    NOT NULL,
    created_at    TEXT    NOT NULL,
    updated_at    TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    session_id   TEXT    PRIMARY KEY,
    user_id      INTEGER,
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL,
    expires_at   TEXT    NOT NULL,
    destroyed_at TEXT,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sessions_user
ON sessions(user_id);

CREATE TABLE IF NOT EXISTS tokens (
    key        TEXT    PRIMARY KEY,
    value      TEXT    NOT NULL,
    expires_at TEXT    NOT NULL,
    created_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tokens_expiry
ON tokens(expires_at);
"""


async def get_db() -> aiosqlite.Connection:
    """
    Open a configured SQLite connection.
    """
    db = await aiosqlite.connect(Path(DB_PATH))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    await db.execute("PRAGMA journal_mode = WAL")
    await db.execute("PRAGMA synchronous = NORMAL")
    await db.execute("PRAGMA cache_size = -8000")
    await db.execute("PRAGMA busy_timeout = 5000")
    return db


@asynccontextmanager
async def open_db() -> AsyncIterator[aiosqlite.Connection]:
    db = await get_db()
    try:
        yield db
    finally:
        await db.close()


async def init_db() -> None:
    """
    Initialize database schema at application startup.
    """
    db = await get_db()
    try:
        await db.executescript(SCHEMA_SQL)
        await db.commit()
    finally:
        await db.close()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """
    Return current UTC timestamp as ISO 8601.
    """
    return utc_now().isoformat()


def is_expired(expires_at: str, now: datetime | None = None) -> bool:
    try:
        expiry_dt = datetime.fromisoformat(expires_at)
    except ValueError:
        return True
    return expiry_dt <= (now or utc_now())
