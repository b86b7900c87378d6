"""
Bearer JWT session gate with role claim (customer, admin).
Tokens are issued by the identity service; payload includes sub (user id), role, exp.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.db import get_db
from storefront.models.user import User, UserRole
from storefront.repositories.user_repo import UserRepository

# Missing credentials are reported by the dependencies below, always as 401
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: UUID, role: UserRole) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload = {"sub": str(user_id), "role": role.value, "exp": expire}
    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _resolve_user(token: str, session: AsyncSession) -> User:
    try:
        settings = get_settings()
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        sub = payload.get("sub")
        if sub is None:
            raise _credentials_exception()
        user_id = UUID(sub)
    except (JWTError, ValueError):
        raise _credentials_exception()
    user = await UserRepository(session).get_by_id(user_id)
    if user is None:
        raise _credentials_exception()
    return user


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    if credentials is None:
        raise _credentials_exception()
    return await _resolve_user(credentials.credentials, session)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """Guest checkout: no token means no user; a bad token is still rejected."""
    if credentials is None:
        return None
    return await _resolve_user(credentials.credentials, session)


def require_role(*allowed: UserRole):
    """Dependency: require current user to have one of the allowed roles."""

    async def _require(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return Depends(_require)
