"""
Auth API Server

FastAPI server exposing account registration, login, logout, current-user
lookup and password reset requests over cookie-backed sessions.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth_api import router as auth_router
from config import FRONTEND_ORIGINS, LOG_LEVEL
from db import init_db
from sessions import SessionManager
from token_store import SQLiteTokenStore

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


async def purge_expired_records() -> tuple[int, int]:
    """
    Drop expired reset tokens and expired or destroyed sessions.
    """
    tokens = await SQLiteTokenStore().purge_expired()
    sessions = await SessionManager().purge_expired()
    logger.info("Purged %s expired tokens and %s stale sessions", tokens, sessions)
    return tokens, sessions


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await init_db()
    await purge_expired_records()
    yield


# Create FastAPI app
app = FastAPI(
    title="Auth API",
    description="Session-based account registration, login and password reset",
    version="1.0.0",
    lifespan=lifespan,
)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "auth-api"}


# Development server
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
