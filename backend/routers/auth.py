"""FastAPI auth routes: signup, login, JWT refresh, and logout."""

import asyncio
import os
from datetime import datetime, timedelta
from functools import partial

import bcrypt
import jwt
from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database import get_db
from logging_config import get_logger
from models_async import User
from schemas import LoginRequest, SignupRequest
from utils.rate_limit import limiter

logger = get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

JWT_SECRET = os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY")
if not JWT_SECRET:
    raise SystemExit(
        "FATAL: JWT_SECRET environment variable is not set. "
        "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
    )

ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES", "60"))
REFRESH_TOKEN_DAYS = int(os.getenv("REFRESH_TOKEN_DAYS", "30"))

_REFRESH_COOKIE = "nilavu_refresh"


def _is_https() -> bool:
    if os.getenv("HTTPS_ONLY", "").lower() == "true":
        return True
    return os.getenv("ENVIRONMENT", "").lower() in ("production", "prod")


def _create_token(user: User, token_type: str, lifetime: timedelta) -> str:
    now = datetime.utcnow()
    payload = {
        "user_id": user.id,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    if token_type == "access":
        payload["email"] = user.email
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def _token_response(user: User, response: Response) -> dict:
    access_token = _create_token(user, "access", timedelta(minutes=ACCESS_TOKEN_MINUTES))
    refresh_token = _create_token(user, "refresh", timedelta(days=REFRESH_TOKEN_DAYS))
    https = _is_https()
    response.set_cookie(
        key=_REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        # samesite="none" requires secure=True, which is only valid over HTTPS
        secure=https,
        samesite="none" if https else "lax",
        max_age=REFRESH_TOKEN_DAYS * 86400,
        path="/auth/refresh",
    )
    return {
        "access_token": access_token,
        "user": {"id": user.id, "name": user.name, "email": user.email},
    }


@router.post("/signup", status_code=201)
@limiter.limit("5/minute")
async def signup(data: SignupRequest, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    email = data.email.strip().lower()

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    loop = asyncio.get_running_loop()
    salt = await loop.run_in_executor(None, partial(bcrypt.gensalt, rounds=12))
    password_hash = await loop.run_in_executor(
        None, partial(bcrypt.hashpw, data.password.encode("utf-8"), salt)
    )
    user = User(name=data.name.strip(), email=email, password_hash=password_hash.decode("utf-8"))
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("auth.signup", user_id=user.id)

    return _token_response(user, response)


@router.post("/login")
@limiter.limit("10/minute")
async def login(data: LoginRequest, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    email = data.email.strip().lower()

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    loop = asyncio.get_running_loop()
    pw_matches = await loop.run_in_executor(
        None, partial(bcrypt.checkpw, data.password.encode("utf-8"), user.password_hash.encode("utf-8"))
    )
    if not pw_matches:
        logger.info("auth.login.rejected", user_id=user.id)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return _token_response(user, response)


@router.post("/refresh")
@limiter.limit("30/minute")
async def refresh_token(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    nilavu_refresh: str = Cookie(default=None),
):
    """Exchange a valid refresh token (httpOnly cookie) for a new access token."""
    if not nilavu_refresh:
        raise HTTPException(status_code=401, detail="No refresh token")

    try:
        payload = jwt.decode(nilavu_refresh, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Refresh token expired — please log in again")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Token type mismatch")

    user = await db.get(User, payload.get("user_id"))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    # Rotates the refresh cookie as well
    return _token_response(user, response)


@router.post("/logout")
async def logout(response: Response):
    https = _is_https()
    response.delete_cookie(
        key=_REFRESH_COOKIE,
        path="/auth/refresh",
        secure=https,
        samesite="none" if https else "lax",
    )
    return {"message": "Logged out"}
