"""
Authentication router: register, login, logout, me and forgot-password.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from auth_deps import get_auth_service, get_session, get_session_for_logout
from auth_models import (
    AuthResult,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    OkResponse,
    User,
    UserEnvelope,
    UsernamePasswordInput,
    UserResponse,
)
from auth_service import AuthService, AuthServiceError
from config import COOKIE_NAME, COOKIE_SAMESITE, COOKIE_SECURE
from sessions import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

GENERIC_SERVER_ERROR = "Internal server error"


def _to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _to_envelope(result: AuthResult) -> UserEnvelope:
    if result.user is not None:
        return UserEnvelope(user=_to_user_response(result.user))
    return UserEnvelope(errors=list(result.errors))


def _set_session_cookie(response: JSONResponse, session_id: str, max_age: int) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=session_id,
        max_age=max_age,
        expires=max_age,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        path="/",
    )


def _clear_session_cookie(response: JSONResponse) -> None:
    response.delete_cookie(COOKIE_NAME, path="/")


def _server_error(exc: AuthServiceError) -> HTTPException:
    logger.error("Auth operation failed: %s (cause: %r)", exc, exc.__cause__)
    return HTTPException(status_code=500, detail=GENERIC_SERVER_ERROR)


@router.post("/register", response_model=UserEnvelope, response_model_exclude_none=True)
async def register(
    payload: UsernamePasswordInput,
    service: AuthService = Depends(get_auth_service),
):
    try:
        result = await service.register(payload)
    except AuthServiceError as exc:
        raise _server_error(exc) from exc
    return _to_envelope(result)


@router.post("/login", response_model=UserEnvelope, response_model_exclude_none=True)
async def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    if session.is_destroyed:
        session = Session()

    try:
        result = await service.login(session, payload.username_or_email, payload.password)
    except AuthServiceError as exc:
        raise _server_error(exc) from exc

    body = _to_envelope(result).model_dump(exclude_none=True)
    response = JSONResponse(content=body)
    if result.ok and session.session_id:
        _set_session_cookie(response, session.session_id, service.sessions.max_age_seconds)
    return response


@router.get("/me", response_model=MeResponse)
async def me(
    session: Session = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    try:
        user = await service.current_user(session)
    except AuthServiceError as exc:
        raise _server_error(exc) from exc
    return MeResponse(user=_to_user_response(user) if user else None)


@router.post("/logout", response_model=OkResponse)
async def logout(
    session: Session = Depends(get_session_for_logout),
    service: AuthService = Depends(get_auth_service),
):
    ok = await service.logout(session)
    response = JSONResponse(content=OkResponse(ok=ok).model_dump())
    _clear_session_cookie(response)
    return response


@router.post("/forgot-password", response_model=OkResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    try:
        ok = await service.request_password_reset(payload.email)
    except AuthServiceError as exc:
        raise _server_error(exc) from exc
    return OkResponse(ok=ok)
