"""
User persistence: abstract store contract and the SQLite implementation.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod

from auth_models import User
from db import open_db, utc_now_iso

_USER_COLUMNS = "id, username, email, password_hash, created_at, updated_at"
_UNIQUE_FIELDS = ("username", "email")


class UserStoreError(RuntimeError):
    """The user store could not complete an operation."""


class UniqueConstraintViolation(Exception):
    """Raised when an insert collides with an existing username or email."""

    def __init__(self, field: str):
        super().__init__(f"{field} already exists")
        self.field = field


class UserStore(ABC):
    @abstractmethod
    async def find_one(
        self,
        *,
        id: int | None = None,
        username: str | None = None,
        email: str | None = None,
    ) -> User | None:
        """
        Return the user matching exactly one of the given criteria.
        """

    @abstractmethod
    async def insert(self, *, username: str, email: str, password_hash: str) -> User:
        """
        Create a user, raising UniqueConstraintViolation on duplicates and
        UserStoreError on any other store failure.
        """

    @abstractmethod
    async def update_password_hash(self, user_id: int, password_hash: str) -> None:
        """
        Replace the stored hash for ``user_id``.
        """


def _violated_field(exc: sqlite3.IntegrityError) -> str | None:
    # SQLite reports unique failures as "UNIQUE constraint failed: users.<column>".
    detail = str(exc)
    if "UNIQUE" not in detail:
        return None
    for column in _UNIQUE_FIELDS:
        if f"users.{column}" in detail:
            return column
    return None


class SQLiteUserStore(UserStore):
    async def find_one(
        self,
        *,
        id: int | None = None,
        username: str | None = None,
        email: str | None = None,
    ) -> User | None:
        criteria = {
            key: value
            for key, value in (("id", id), ("username", username), ("email", email))
            if value is not None
        }
        if len(criteria) != 1:
            raise ValueError("find_one expects exactly one criterion.")
        column, value = next(iter(criteria.items()))

        try:
            async with open_db() as db:
                cursor = await db.execute(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE {column} = ?",
                    (value,),
                )
                row = await cursor.fetchone()
                await cursor.close()
        except sqlite3.Error as exc:
            raise UserStoreError(f"Failed to look up user by {column}: {exc}") from exc
        return User.from_row(row) if row else None

    async def insert(self, *, username: str, email: str, password_hash: str) -> User:
        now = utc_now_iso()
        try:
            async with open_db() as db:
                cursor = await db.execute(
                    """
                    INSERT INTO users (username, email, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (username, email, password_hash, now, now),
                )
                user_id = int(cursor.lastrowid)
                await cursor.close()
                await db.commit()
        except sqlite3.IntegrityError as exc:
            field = _violated_field(exc)
            if field is None:
                raise UserStoreError(f"Failed to create user: {exc}") from exc
            raise UniqueConstraintViolation(field) from exc
        except sqlite3.Error as exc:
            raise UserStoreError(f"Failed to create user: {exc}") from exc

        return User(
            id=user_id,
            username=username,
            email=email,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )

    async def update_password_hash(self, user_id: int, password_hash: str) -> None:
        try:
            async with open_db() as db:
                await db.execute(
                    "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                    (password_hash, utc_now_iso(), user_id),
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise UserStoreError(f"Failed to update password hash: {exc}") from exc
