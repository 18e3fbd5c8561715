from __future__ import annotations

import importlib
import os
import sys
import unittest
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send(self, address: str, message: str) -> None:
        self.sent.append((address, message))


class AuthApiTests(unittest.TestCase):
    def setUp(self):
        self._tmp_root = BACKEND_DIR / "tests" / ".tmp"
        self._tmp_root.mkdir(parents=True, exist_ok=True)
        self._db_path = self._tmp_root / f"auth_test_{uuid.uuid4().hex}.db"
        self._env_backup = {
            "DB_PATH": os.environ.get("DB_PATH"),
            "COOKIE_SECURE": os.environ.get("COOKIE_SECURE"),
            "FRONTEND_ORIGINS": os.environ.get("FRONTEND_ORIGINS"),
            "NOTIFIER": os.environ.get("NOTIFIER"),
        }
        os.environ["DB_PATH"] = str(self._db_path)
        os.environ["COOKIE_SECURE"] = "false"
        os.environ["FRONTEND_ORIGINS"] = "http://localhost:3000"
        os.environ["NOTIFIER"] = "log"

        import config
        import db
        import sessions
        import token_store
        import user_store
        import notifier
        import auth_service
        import auth_deps
        import auth_api

        importlib.reload(config)
        importlib.reload(db)
        importlib.reload(sessions)
        importlib.reload(token_store)
        importlib.reload(user_store)
        importlib.reload(notifier)
        importlib.reload(auth_service)
        importlib.reload(auth_deps)
        importlib.reload(auth_api)

        self.config = config
        self.sessions = sessions
        self.token_store = token_store
        self.notifier = RecordingNotifier()

        def _auth_service_override(manager=Depends(auth_deps.get_session_manager)):
            return auth_service.AuthService(
                users=user_store.SQLiteUserStore(),
                tokens=token_store.SQLiteTokenStore(),
                sessions=manager,
                notifier=self.notifier,
            )

        @asynccontextmanager
        async def lifespan(_app: FastAPI):
            await db.init_db()
            yield

        app = FastAPI(lifespan=lifespan)
        app.include_router(auth_api.router)
        app.dependency_overrides[auth_deps.get_auth_service] = _auth_service_override

        self.app = app
        self.auth_deps = auth_deps
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)

        for key, value in self._env_backup.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

        for suffix in ("", "-wal", "-shm"):
            candidate = Path(f"{self._db_path}{suffix}")
            if candidate.exists():
                candidate.unlink()

    def _register(self, username="alice", email="alice@x.com", password="secret1"):
        return self.client.post(
            "/auth/register",
            json={"username": username, "email": email, "password": password},
        )

    def test_register_returns_user_without_password(self):
        response = self._register()
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertNotIn("errors", payload)
        self.assertEqual(payload["user"]["username"], "alice")
        self.assertEqual(payload["user"]["email"], "alice@x.com")
        self.assertNotIn("password", payload["user"])
        self.assertNotIn("password_hash", payload["user"])

    def test_register_duplicate_username_is_field_error(self):
        self._register()
        response = self._register(email="alice2@x.com")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"errors": [{"field": "username", "message": "already taken"}]},
        )

    def test_register_validation_errors_are_all_reported(self):
        response = self._register(username="a@", email="nope", password="pw")
        fields = [error["field"] for error in response.json()["errors"]]
        self.assertEqual(fields, ["username", "username", "email", "password"])

    def test_login_me_logout_flow(self):
        self._register()

        login_response = self.client.post(
            "/auth/login",
            json={"usernameOrEmail": "alice", "password": "secret1"},
        )
        self.assertEqual(login_response.status_code, 200)
        self.assertEqual(login_response.json()["user"]["username"], "alice")
        self.assertTrue(self.client.cookies.get(self.config.COOKIE_NAME))

        me_response = self.client.get("/auth/me")
        self.assertEqual(me_response.json()["user"]["email"], "alice@x.com")

        logout_response = self.client.post("/auth/logout")
        self.assertEqual(logout_response.json(), {"ok": True})
        self.assertIn("Max-Age=0", logout_response.headers.get("set-cookie", ""))

        me_after_logout = self.client.get("/auth/me")
        self.assertIsNone(me_after_logout.json()["user"])

    def test_login_by_email(self):
        self._register()
        response = self.client.post(
            "/auth/login",
            json={"usernameOrEmail": "alice@x.com", "password": "secret1"},
        )
        self.assertEqual(response.json()["user"]["username"], "alice")

    def test_login_errors(self):
        self._register()

        wrong_password = self.client.post(
            "/auth/login",
            json={"usernameOrEmail": "alice", "password": "wrong"},
        )
        unknown_user = self.client.post(
            "/auth/login",
            json={"usernameOrEmail": "bob", "password": "secret1"},
        )

        self.assertEqual(
            wrong_password.json(),
            {"errors": [{"field": "password", "message": "incorrect password"}]},
        )
        self.assertEqual(
            unknown_user.json(),
            {"errors": [{"field": "usernameOrEmail", "message": "does not exist"}]},
        )
        self.assertIsNone(self.client.cookies.get(self.config.COOKIE_NAME))

    def test_me_is_null_when_anonymous(self):
        response = self.client.get("/auth/me")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["user"])

    def test_replayed_cookie_after_logout_stays_anonymous(self):
        self._register()
        self.client.post("/auth/login", json={"usernameOrEmail": "alice", "password": "secret1"})
        old_session_id = self.client.cookies.get(self.config.COOKIE_NAME)
        self.client.post("/auth/logout")

        self.client.cookies.clear()
        self.client.cookies.set(self.config.COOKIE_NAME, old_session_id)
        self.assertIsNone(self.client.get("/auth/me").json()["user"])

        relogin = self.client.post(
            "/auth/login",
            json={"usernameOrEmail": "alice", "password": "secret1"},
        )
        self.assertEqual(relogin.json()["user"]["username"], "alice")
        self.assertNotEqual(relogin.cookies.get(self.config.COOKIE_NAME), old_session_id)

    def test_logout_clears_cookie_when_destroy_fails(self):
        sessions = self.sessions

        class FailingSessionManager(sessions.SessionManager):
            async def destroy(self, session):
                session.state = sessions.SessionState.DESTROYED
                raise sessions.SessionDestroyFailed("store unavailable")

        self._register()
        self.client.post("/auth/login", json={"usernameOrEmail": "alice", "password": "secret1"})
        self.app.dependency_overrides[self.auth_deps.get_session_manager] = lambda: FailingSessionManager()

        response = self.client.post("/auth/logout")
        self.assertEqual(response.json(), {"ok": False})
        self.assertIn("Max-Age=0", response.headers.get("set-cookie", ""))

    def _install_unavailable_session_store(self):
        sessions = self.sessions
        destroy_attempts = []

        class UnavailableSessionManager(sessions.SessionManager):
            async def load(self, session_id):
                raise sessions.SessionStoreError("database is locked")

            async def destroy(self, session):
                destroy_attempts.append(session.session_id)
                session.mark_destroyed()
                raise sessions.SessionDestroyFailed("database is locked")

        self.app.dependency_overrides[self.auth_deps.get_session_manager] = lambda: UnavailableSessionManager()
        return destroy_attempts

    def test_logout_clears_cookie_when_session_load_fails(self):
        destroy_attempts = self._install_unavailable_session_store()
        self.client.cookies.set(self.config.COOKIE_NAME, "stale-session-id")

        response = self.client.post("/auth/logout")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": False})
        self.assertIn("Max-Age=0", response.headers.get("set-cookie", ""))
        self.assertEqual(destroy_attempts, ["stale-session-id"])

    def test_me_reports_generic_error_when_session_load_fails(self):
        self._install_unavailable_session_store()
        self.client.cookies.set(self.config.COOKIE_NAME, "stale-session-id")

        response = self.client.get("/auth/me")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Internal server error"})

    def test_long_username_is_not_rejected_by_request_model(self):
        response = self._register(username="a" * 300, email="long@x.com")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["username"], "a" * 300)

    def test_forgot_password_is_non_enumerating(self):
        self._register()

        known = self.client.post("/auth/forgot-password", json={"email": "alice@x.com"})
        unknown = self.client.post("/auth/forgot-password", json={"email": "ghost@x.com"})

        self.assertEqual(known.json(), {"ok": True})
        self.assertEqual(unknown.json(), {"ok": True})
        self.assertEqual(len(self.notifier.sent), 1)
        address, message = self.notifier.sent[0]
        self.assertEqual(address, "alice@x.com")
        self.assertIn("/change-password/", message)


if __name__ == "__main__":
    unittest.main()
