"""
Bearer-token verification and role checks.

Tokens are minted by the identity layer (Telegram login); this service
only verifies them. ``create_access_token`` exists for that layer and
for tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.config import get_settings
from courtside.core.exceptions import PermissionDeniedError
from courtside.db.session import get_db
from courtside.models.user import User

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        subject = payload.get("sub")
        if subject is None:
            raise _unauthorized("Invalid token")
        return int(subject)
    except (JWTError, ValueError):
        raise _unauthorized("Invalid token")


async def is_staff(db: AsyncSession, user_id: int) -> bool:
    role = (await db.execute(select(User.role).where(User.id == user_id))).scalar_one_or_none()
    return role is not None and role.value in settings.STAFF_ROLES


async def require_staff(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> int:
    if not await is_staff(db, user_id):
        raise PermissionDeniedError(code="STAFF_ONLY", message="Staff role required", details={"user_id": user_id})
    return user_id


async def ensure_self_or_staff(db: AsyncSession, caller_id: int, user_id: int) -> None:
    """A player may only act on their own registrations."""
    if caller_id != user_id and not await is_staff(db, caller_id):
        raise PermissionDeniedError(
            code="NOT_OWNER",
            message="Cannot act on behalf of another user",
            details={"user_id": user_id},
        )
