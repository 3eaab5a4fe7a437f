"""
Request Dependencies
====================
FastAPI dependencies for sessions, the current user and access gates.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from exceptions import AuthenticationError, PermissionDeniedError
from models import User
from services.auth_service import AuthService
from services.permissions import is_allowed
from services.user_service import UserService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the bearer token to an active user.

    Raises:
        AuthenticationError: Missing, unknown or expired token
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return await AuthService.from_session(session).resolve_session(credentials.credentials)


def require_roles(*roles: str, permission: Optional[str] = None):
    """
    Build a dependency admitting users whose legacy role is listed or whose
    effective role grants `permission`.

    Usage:
        @router.delete("/{id}")
        async def delete(user: User = Depends(require_roles("admin", permission="can_delete_documents"))):
            ...
    """

    async def checker(
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_session),
    ) -> User:
        permissions = await UserService.from_session(session).get_permissions(user)
        if not is_allowed(user, permissions, roles, permission):
            raise PermissionDeniedError(
                "Insufficient permissions",
                action=permission or "/".join(roles),
                user_id=user.id,
            )
        return user

    return checker


require_admin = require_roles("admin")
require_staff = require_roles("admin", "technician")


def require_self_or_admin(user: User, target_user_id: int) -> None:
    if user.id != target_user_id and not user.is_admin:
        raise PermissionDeniedError(
            "You can only access your own records",
            action="view_user",
            user_id=user.id,
        )
