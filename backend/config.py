import os
from pathlib import Path

# Base directory is the directory containing this file (backend/)
BASE_DIR = Path(__file__).resolve().parent

# Database Paths
DB_PATH = Path(os.getenv("DB_PATH", str(BASE_DIR / "auth.db")))

# Environment
APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
IS_DEV_ENV = APP_ENV in {"dev", "development", "local", "test"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# Session cookie configuration
COOKIE_NAME = os.getenv("COOKIE_NAME", "qid")
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").strip().lower() == "true"
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(60 * 60 * 24 * 365 * 10)))

# Password reset
RESET_TOKEN_PREFIX = "reset-"
RESET_TOKEN_TTL_MS = int(os.getenv("RESET_TOKEN_TTL_MS", str(1000 * 60 * 60 * 24 * 3)))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Notifier
NOTIFIER = os.getenv("NOTIFIER", "log").strip().lower()
MAIL_WEBHOOK_URL = os.getenv("MAIL_WEBHOOK_URL", "").strip()
MAIL_WEBHOOK_TOKEN = os.getenv("MAIL_WEBHOOK_TOKEN", "").strip()
MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@localhost").strip()
MAIL_TIMEOUT_SECONDS = float(os.getenv("MAIL_TIMEOUT_SECONDS", "10"))


def _parse_origins(raw: str) -> list[str]:
    values = [value.strip() for value in raw.split(",")]
    return [value for value in values if value]


FRONTEND_ORIGINS = _parse_origins(
    os.getenv(
        "FRONTEND_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )
)

if not IS_DEV_ENV and not COOKIE_SECURE:
    raise RuntimeError("Insecure configuration: COOKIE_SECURE must be true outside development.")

if "*" in FRONTEND_ORIGINS:
    raise RuntimeError("Insecure CORS configuration: wildcard origins are not allowed.")

if NOTIFIER not in {"log", "webhook"}:
    raise RuntimeError("Invalid NOTIFIER. Supported values: log, webhook.")

if NOTIFIER == "webhook" and not MAIL_WEBHOOK_URL:
    raise RuntimeError("MAIL_WEBHOOK_URL must be set when NOTIFIER=webhook.")

if not IS_DEV_ENV and NOTIFIER == "log":
    raise RuntimeError("Insecure configuration: NOTIFIER=log writes reset links to the log; use webhook outside development.")
