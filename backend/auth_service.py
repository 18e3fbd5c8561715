"""
Account registration, login, logout, current-user lookup and password reset
requests.

Expected failures (bad input, duplicates, unknown identifier, wrong password)
come back as field errors on an AuthResult. Unexpected store or delivery
faults are raised as AuthServiceError.
"""

from __future__ import annotations

import asyncio
import logging
import secrets

from auth_models import AuthErrorCode, AuthResult, FieldError, User, UsernamePasswordInput
from config import FRONTEND_URL, RESET_TOKEN_PREFIX, RESET_TOKEN_TTL_MS
from notifier import Notifier, NotifierError
from passwords import hash_password, needs_rehash, verify_password
from sessions import Session, SessionDestroyFailed, SessionManager, SessionStoreError
from token_store import TokenStore, TokenStoreError
from user_store import UniqueConstraintViolation, UserStore, UserStoreError
from validation import validate_register

logger = logging.getLogger(__name__)

ALREADY_TAKEN = "already taken"
DOES_NOT_EXIST = "does not exist"
INCORRECT_PASSWORD = "incorrect password"

_STORE_ERRORS = (UserStoreError, TokenStoreError, SessionStoreError)


class AuthServiceError(RuntimeError):
    """Unexpected failure while serving an auth operation."""


def reset_password_message(token: str, base_url: str = FRONTEND_URL) -> str:
    return f'<a href="{base_url}/change-password/{token}">reset password</a>'


async def _run_cpu_bound(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


class AuthService:
    def __init__(
        self,
        users: UserStore,
        tokens: TokenStore,
        sessions: SessionManager,
        notifier: Notifier,
        *,
        reset_token_ttl_ms: int = RESET_TOKEN_TTL_MS,
        reset_url_base: str = FRONTEND_URL,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self.sessions = sessions
        self.notifier = notifier
        self.reset_token_ttl_ms = reset_token_ttl_ms
        self.reset_url_base = reset_url_base.rstrip("/")

    async def register(self, options: UsernamePasswordInput) -> AuthResult:
        errors = validate_register(options)
        if errors:
            return AuthResult.failure(*errors)

        password_hash = await _run_cpu_bound(hash_password, options.password)
        try:
            user = await self.users.insert(
                username=options.username,
                email=options.email,
                password_hash=password_hash,
            )
        except UniqueConstraintViolation as exc:
            logger.info("Registration rejected: duplicate %s", exc.field)
            return AuthResult.failure(
                FieldError(
                    field=exc.field,
                    message=ALREADY_TAKEN,
                    code=AuthErrorCode.DUPLICATE_ACCOUNT,
                )
            )
        except _STORE_ERRORS as exc:
            raise AuthServiceError("Failed to create account") from exc

        logger.info("Registered user id=%s", user.id)
        return AuthResult.success(user)

    async def login(self, session: Session, username_or_email: str, password: str) -> AuthResult:
        try:
            if "@" in username_or_email:
                user = await self.users.find_one(email=username_or_email)
            else:
                user = await self.users.find_one(username=username_or_email)
        except _STORE_ERRORS as exc:
            raise AuthServiceError("Failed to look up account") from exc

        if user is None:
            return AuthResult.failure(
                FieldError(
                    field="usernameOrEmail",
                    message=DOES_NOT_EXIST,
                    code=AuthErrorCode.NOT_FOUND,
                )
            )

        valid = await _run_cpu_bound(verify_password, user.password_hash, password)
        if not valid:
            logger.info("Login failed for user id=%s: incorrect password", user.id)
            return AuthResult.failure(
                FieldError(
                    field="password",
                    message=INCORRECT_PASSWORD,
                    code=AuthErrorCode.INVALID_CREDENTIAL,
                )
            )

        if needs_rehash(user.password_hash):
            new_hash = await _run_cpu_bound(hash_password, password)
            try:
                await self.users.update_password_hash(user.id, new_hash)
            except UserStoreError as exc:
                logger.warning("Password rehash for user id=%s not saved: %s", user.id, exc)

        try:
            await self.sessions.authenticate(session, user.id)
        except _STORE_ERRORS as exc:
            raise AuthServiceError("Failed to establish session") from exc

        return AuthResult.success(user)

    async def request_password_reset(self, email: str) -> bool:
        """
        Store a reset token for ``email`` and send the reset link.

        Returns True whether or not the email is registered.
        """
        try:
            user = await self.users.find_one(email=email)
            if user is None:
                return True

            token = secrets.token_urlsafe(32)
            await self.tokens.set(RESET_TOKEN_PREFIX + token, str(user.id), self.reset_token_ttl_ms)
        except _STORE_ERRORS as exc:
            raise AuthServiceError("Failed to create password reset token") from exc

        try:
            await self.notifier.send(email, reset_password_message(token, self.reset_url_base))
        except NotifierError as exc:
            raise AuthServiceError("Failed to deliver password reset email") from exc

        logger.info("Password reset requested for user id=%s", user.id)
        return True

    async def current_user(self, session: Session) -> User | None:
        user_id = session.authenticated_user_id
        if user_id is None:
            return None
        try:
            return await self.users.find_one(id=user_id)
        except _STORE_ERRORS as exc:
            raise AuthServiceError("Failed to load current user") from exc

    async def logout(self, session: Session) -> bool:
        try:
            await self.sessions.destroy(session)
        except SessionDestroyFailed as exc:
            logger.warning("%s: %s", AuthErrorCode.SESSION_DESTROY_FAILED.value, exc)
            return False
        return True
