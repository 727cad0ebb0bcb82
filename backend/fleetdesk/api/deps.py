"""Common API dependencies."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetdesk.core.errors import AuthRequired, Forbidden
from fleetdesk.core.security import decode_access_token
from fleetdesk.db.session import get_session
from fleetdesk.models.user import User, UserRole
from fleetdesk.services.scope_service import Scope, resolve_scope

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    """Resolve the bearer token into the acting user."""
    if credentials is None or not credentials.credentials:
        raise AuthRequired()

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise AuthRequired("Could not validate credentials") from exc

    subject = payload.get("sub")
    try:
        user_id = uuid.UUID(str(subject))
    except (ValueError, TypeError) as exc:
        raise AuthRequired("Could not validate credentials") from exc

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthRequired("Could not validate credentials")
    return user


async def get_scope(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> Scope:
    """Resolve the actor's scope once per request; inactive users are rejected."""
    return await resolve_scope(session, current_user)


def require_roles(*roles: UserRole):
    """Dependency factory gating an endpoint on any of ``roles``."""

    async def _dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        scope: Annotated[Scope, Depends(get_scope)],
    ) -> Scope:
        if not current_user.role_set & set(roles):
            raise Forbidden("Insufficient permissions")
        return scope

    return _dependency


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActorScope = Annotated[Scope, Depends(get_scope)]
StaffScope = Annotated[
    Scope, Depends(require_roles(UserRole.AGENT, UserRole.MANAGER, UserRole.ADMIN))
]
ManagerScope = Annotated[Scope, Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN))]
