"""Nilavu FastAPI application."""

import os
import sqlite3
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import DatabaseError as SADatabaseError

from config import Config
from database import init_db
from logging_config import get_logger
from routers.admin import API_VERSION, router as admin_router
from routers.auth import router as auth_router
from routers.projects import router as projects_router
from routers.sources import router as sources_router
from routers.synthesis import router as synthesis_router
from utils.rate_limit import limiter

logger = get_logger(__name__)

UPLOAD_FOLDER = Config.UPLOAD_FOLDER
os.makedirs(UPLOAD_FOLDER, exist_ok=True)

_MAINTENANCE_BODY = {
    "error": "System maintenance in progress. Please try again shortly.",
    "code": "DB_MAINTENANCE",
}


# ── Lifespan ───────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    Config.validate()
    await init_db()
    logger.info("database.initialized")
    yield


# ── FastAPI app ────────────────────────────────────────────────────────────────
app = FastAPI(title="Nilavu API", version=API_VERSION, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ── Global exception handlers — DB corruption + catch-all ──────────────────────
@app.exception_handler(sqlite3.DatabaseError)
async def sqlite_db_error_handler(request: Request, exc: sqlite3.DatabaseError):
    """Return a clean 503 instead of a stack trace when SQLite is corrupted."""
    logger.critical("sqlite.database_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content=_MAINTENANCE_BODY)


@app.exception_handler(SADatabaseError)
async def sqlalchemy_db_error_handler(request: Request, exc: SADatabaseError):
    """Catch SQLAlchemy-wrapped DB errors (e.g. sqlalchemy.exc.OperationalError)."""
    logger.critical("sqlalchemy.database_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content=_MAINTENANCE_BODY)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: anything a router did not map to an HTTP status becomes a clean 500."""
    if isinstance(exc, HTTPException):
        # Must return a Response inside a handler — raising causes a double-exception.
        return await http_exception_handler(request, exc)
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected server error occurred. Please try again."},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(sources_router)
app.include_router(synthesis_router)
app.include_router(admin_router)

# ── Mount static uploads folder for local storage ──────────────────────────────
app.mount("/static/uploads", StaticFiles(directory=UPLOAD_FOLDER), name="uploads")


# ── Request logging middleware ─────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(
        "request.received",
        ip=request.client.host if request.client else "unknown",
        method=request.method,
        path=request.url.path,
    )
    return await call_next(request)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=Config.HOST, port=Config.PORT, reload=False)
