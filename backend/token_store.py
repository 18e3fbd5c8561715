"""
Short-lived key/value storage with expiry, used for password reset tokens.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable

from db import is_expired, open_db, utc_now


class TokenStoreError(RuntimeError):
    """The token store could not complete an operation."""


class TokenStore(ABC):
    @abstractmethod
    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        """
        Store ``value`` under ``key`` for ``ttl_ms`` milliseconds, replacing
        any previous value.
        """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """
        Return the live value for ``key`` or None when absent or expired.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Remove ``key`` if present.
        """

    @abstractmethod
    async def consume(self, key: str) -> str | None:
        """
        Atomically read and delete ``key``; at most one caller gets the value.
        """

    @abstractmethod
    async def purge_expired(self) -> int:
        """
        Remove every expired entry and return how many were removed.
        """


async def _delete_expired(db, now: datetime) -> int:
    # Every expires_at is a UTC isoformat() string, so text order is time order.
    cursor = await db.execute(
        "DELETE FROM tokens WHERE expires_at <= ?",
        (now.isoformat(),),
    )
    removed = cursor.rowcount
    await cursor.close()
    return removed


class SQLiteTokenStore(TokenStore):
    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive.")
        now = self._clock()
        expires_at = now + timedelta(milliseconds=ttl_ms)
        try:
            async with open_db() as db:
                await _delete_expired(db, now)
                await db.execute(
                    """
                    INSERT INTO tokens (key, value, expires_at, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        expires_at = excluded.expires_at,
                        created_at = excluded.created_at
                    """,
                    (key, value, expires_at.isoformat(), now.isoformat()),
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise TokenStoreError(f"Failed to store token: {exc}") from exc

    async def _fetch(self, db, key: str) -> tuple[str, str] | None:
        cursor = await db.execute(
            "SELECT value, expires_at FROM tokens WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if not row:
            return None
        return str(row["value"]), str(row["expires_at"])

    async def get(self, key: str) -> str | None:
        try:
            async with open_db() as db:
                record = await self._fetch(db, key)
                if record is None:
                    return None
                value, expires_at = record
                if is_expired(expires_at, self._clock()):
                    await db.execute("DELETE FROM tokens WHERE key = ?", (key,))
                    await db.commit()
                    return None
                return value
        except sqlite3.Error as exc:
            raise TokenStoreError(f"Failed to read token: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            async with open_db() as db:
                await db.execute("DELETE FROM tokens WHERE key = ?", (key,))
                await db.commit()
        except sqlite3.Error as exc:
            raise TokenStoreError(f"Failed to delete token: {exc}") from exc

    async def consume(self, key: str) -> str | None:
        try:
            async with open_db() as db:
                record = await self._fetch(db, key)
                if record is None:
                    return None
                value, expires_at = record
                cursor = await db.execute(
                    "DELETE FROM tokens WHERE key = ? AND value = ? AND expires_at = ?",
                    (key, value, expires_at),
                )
                consumed = cursor.rowcount == 1
                await cursor.close()
                await db.commit()
        except sqlite3.Error as exc:
            raise TokenStoreError(f"Failed to consume token: {exc}") from exc

        if not consumed or is_expired(expires_at, self._clock()):
            return None
        return value

    async def purge_expired(self) -> int:
        try:
            async with open_db() as db:
                removed = await _delete_expired(db, self._clock())
                await db.commit()
                return removed
        except sqlite3.Error as exc:
            raise TokenStoreError(f"Failed to purge expired tokens: {exc}") from exc
