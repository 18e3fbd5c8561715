"""
Server-side sessions keyed by an opaque identifier carried in a cookie.

A session moves Anonymous -> Authenticated on login and to Destroyed on
logout. Destroyed is terminal: a new login needs a new session.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from config import SESSION_MAX_AGE_SECONDS
from db import is_expired, open_db, utc_now

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    DESTROYED = "destroyed"


class SessionStateError(RuntimeError):
    """An operation is not allowed in the session's current state."""


class SessionStoreError(RuntimeError):
    """The session store could not complete an operation."""


class SessionDestroyFailed(SessionStoreError):
    """The session store could not remove server-side session state."""


@dataclass
class Session:
    session_id: str | None = None
    state: SessionState = SessionState.ANONYMOUS
    user_id: int | None = field(default=None)

    @property
    def authenticated_user_id(self) -> int | None:
        """The user id, only while the session is Authenticated."""
        if self.state is not SessionState.AUTHENTICATED:
            return None
        return self.user_id

    @property
    def is_destroyed(self) -> bool:
        return self.state is SessionState.DESTROYED

    def mark_authenticated(self, session_id: str, user_id: int) -> None:
        if self.is_destroyed:
            raise SessionStateError("Cannot authenticate a destroyed session.")
        self.session_id = session_id
        self.user_id = user_id
        self.state = SessionState.AUTHENTICATED

    def mark_destroyed(self) -> None:
        self.user_id = None
        self.state = SessionState.DESTROYED


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


async def _delete_stale(db, now: datetime) -> int:
    # Every expires_at is a UTC isoformat() string, so text order is time order.
    cursor = await db.execute(
        "DELETE FROM sessions WHERE destroyed_at IS NOT NULL OR expires_at <= ?",
        (now.isoformat(),),
    )
    removed = cursor.rowcount
    await cursor.close()
    return removed


class SessionManager:
    def __init__(
        self,
        max_age_seconds: int = SESSION_MAX_AGE_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    async def load(self, session_id: str | None) -> Session:
        if not session_id:
            return Session()

        try:
            async with open_db() as db:
                cursor = await db.execute(
                    """
                    SELECT session_id, user_id, expires_at, destroyed_at
                    FROM sessions
                    WHERE session_id = ?
                    """,
                    (session_id,),
                )
                row = await cursor.fetchone()
                await cursor.close()
        except sqlite3.Error as exc:
            raise SessionStoreError(f"Failed to load session: {exc}") from exc

        # Unknown ids are never adopted; a login issues a fresh one.
        if not row:
            return Session()
        if row["destroyed_at"]:
            return Session(session_id=session_id, state=SessionState.DESTROYED)
        if is_expired(str(row["expires_at"]), self._clock()):
            return Session()
        if row["user_id"] is None:
            return Session(session_id=session_id)
        return Session(
            session_id=session_id,
            state=SessionState.AUTHENTICATED,
            user_id=int(row["user_id"]),
        )

    async def authenticate(self, session: Session, user_id: int) -> Session:
        if session.is_destroyed:
            raise SessionStateError("Cannot authenticate a destroyed session.")

        now = self._clock()
        expires_at = (now + timedelta(seconds=self.max_age_seconds)).isoformat()
        session_id = session.session_id or new_session_id()

        try:
            async with open_db() as db:
                await _delete_stale(db, now)
                await db.execute(
                    """
                    INSERT INTO sessions (session_id, user_id, created_at, updated_at, expires_at, destroyed_at)
                    VALUES (?, ?, ?, ?, ?, NULL)
                    ON CONFLICT(session_id) DO UPDATE SET
                        user_id = excluded.user_id,
                        updated_at = excluded.updated_at,
                        expires_at = excluded.expires_at
                    """,
                    (session_id, user_id, now.isoformat(), now.isoformat(), expires_at),
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise SessionStoreError(f"Failed to persist session: {exc}") from exc

        session.mark_authenticated(session_id, user_id)
        return session

    async def destroy(self, session: Session) -> None:
        """
        Mark the session destroyed. The in-memory session ends up Destroyed
        even when the store fails; the failure is raised as
        SessionDestroyFailed.
        """
        try:
            if session.session_id is None or session.is_destroyed:
                return
            now_iso = self._clock().isoformat()
            async with open_db() as db:
                await db.execute(
                    """
                    UPDATE sessions
                    SET user_id = NULL, destroyed_at = COALESCE(destroyed_at, ?), updated_at = ?
                    WHERE session_id = ?
                    """,
                    (now_iso, now_iso, session.session_id),
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise SessionDestroyFailed(f"Failed to destroy session: {exc}") from exc
        finally:
            session.mark_destroyed()

    async def purge_expired(self) -> int:
        """
        Delete destroyed and expired session rows; returns how many went.
        """
        try:
            async with open_db() as db:
                removed = await _delete_stale(db, self._clock())
                await db.commit()
                return removed
        except sqlite3.Error as exc:
            raise SessionStoreError(f"Failed to purge sessions: {exc}") from exc
