"""
Dependencies for session-aware endpoints.
"""

import logging

from fastapi import Depends, HTTPException, Request

from auth_service import AuthService
from config import COOKIE_NAME, NOTIFIER
from notifier import create_notifier
from sessions import Session, SessionManager, SessionStoreError
from token_store import SQLiteTokenStore
from user_store import SQLiteUserStore

logger = logging.getLogger(__name__)


def get_session_manager() -> SessionManager:
    return SessionManager()


def get_auth_service(sessions: SessionManager = Depends(get_session_manager)) -> AuthService:
    return AuthService(
        users=SQLiteUserStore(),
        tokens=SQLiteTokenStore(),
        sessions=sessions,
        notifier=create_notifier(NOTIFIER),
    )


async def get_session(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> Session:
    try:
        return await sessions.load(request.cookies.get(COOKIE_NAME))
    except SessionStoreError as exc:
        logger.error("Session load failed: %s", exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


async def get_session_for_logout(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> Session:
    """
    Like get_session, but falls back to an unverified session carrying the
    cookie's id so logout can still attempt destroy when loading fails.
    """
    session_id = request.cookies.get(COOKIE_NAME)
    try:
        return await sessions.load(session_id)
    except SessionStoreError as exc:
        logger.warning("Session load failed during logout: %s", exc)
        return Session(session_id=session_id)
