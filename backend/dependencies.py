"""Shared FastAPI dependencies: database session and the authenticated user."""

from typing import Annotated, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models_async import User
from routers.auth import JWT_SECRET

_bearer = HTTPBearer(auto_error=False)

DB = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    db: DB,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> User:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = jwt.decode(credentials.credentials, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Unauthorized")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = await db.get(User, payload.get("user_id"))
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
