"""
User Service
============
Account administration and effective-permission lookup.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select

from exceptions import NotFoundError, ValidationError
from models import Role, User, UserRole, UserStatus, row_to_dict
from security import hash_password
from services.auth_service import AuthService
from services.base import BaseService
from services.permissions import effective_permissions, system_role_name_for

logger = logging.getLogger(__name__)

VALID_ROLES = tuple(r.value for r in UserRole)
VALID_STATUSES = tuple(s.value for s in UserStatus)


def public_user(user: User) -> Dict[str, Any]:
    """User columns without the password hash."""
    return row_to_dict(user, exclude=("password",))


class UserService(BaseService):
    """
    Usage:
        service = UserService.from_session(session)
        user = await service.create_user("bob", "pw", "bob@example.com", "Bob")
    """

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_users(self) -> List[User]:
        result = await self._session.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self._session.get(User, user_id)

    async def require_user(self, user_id: int) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def users_by_roles(self, roles: Iterable[str], active_only: bool = True) -> List[User]:
        stmt = select(User).where(User.role.in_(list(roles)))
        if active_only:
            stmt = stmt.where(User.status == UserStatus.ACTIVE.value)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_user(
        self,
        username: str,
        password: str,
        email: str,
        name: str,
        role: str = UserRole.USER.value,
        status: str = UserStatus.ACTIVE.value,
        avatar: Optional[str] = None,
    ) -> User:
        """
        Create an account with a hashed password.

        The user is linked to the system role matching `role` when that role
        has been seeded.

        Raises:
            ValidationError: Unknown role or status
            ConflictError: Username already taken (400)
        """
        self._check_role(role)
        self._check_status(status)

        user = User(
            username=username,
            password=hash_password(password),
            email=email,
            name=name,
            role=role,
            status=status,
            avatar=avatar,
            custom_role_id=await self._system_role_id(role),
        )
        self._session.add(user)
        await self._flush(
            f"Username '{username}' is already taken", resource="user", status_code=400
        )

        logger.info(f"Created user: id={user.id}, username={username}, role={role}")
        return user

    async def update_role(self, user_id: int, role: str) -> User:
        """
        Change the legacy role.

        A user still linked to a system role follows the new role; a custom
        role assignment is left alone.
        """
        self._check_role(role)
        user = await self.require_user(user_id)

        current = await self._session.get(Role, user.custom_role_id) if user.custom_role_id else None
        if current is None or current.is_system_role:
            user.custom_role_id = await self._system_role_id(role)

        user.role = role
        await self._session.flush()
        logger.info(f"User role updated: id={user_id}, role={role}")
        return user

    async def update_status(self, user_id: int, status: str) -> User:
        """Change the account status. Disabling an account ends its sessions."""
        self._check_status(status)
        user = await self.require_user(user_id)

        user.status = status
        await self._session.flush()

        if status != UserStatus.ACTIVE.value:
            await AuthService.from_session(self._session).revoke_user_sessions(user_id)

        logger.info(f"User status updated: id={user_id}, status={status}")
        return user

    async def assign_custom_role(self, user_id: int, role_id: int) -> User:
        user = await self.require_user(user_id)
        if await self._session.get(Role, role_id) is None:
            raise NotFoundError("Role", role_id)

        user.custom_role_id = role_id
        await self._session.flush()
        return user

    # =========================================================================
    # Permissions
    # =========================================================================

    async def get_role_for(self, user: User) -> Optional[Role]:
        """The custom role if assigned and present, else the matching system role."""
        if user.custom_role_id:
            role = await self._session.get(Role, user.custom_role_id)
            if role is not None:
                return role

        result = await self._session.execute(
            select(Role).where(Role.name == system_role_name_for(user.role))
        )
        return result.scalar_one_or_none()

    async def get_permissions(self, user: User) -> Dict[str, bool]:
        return effective_permissions(user, await self.get_role_for(user))

    async def get_user_with_permissions(self, user_id: int) -> Dict[str, Any]:
        user = await self.require_user(user_id)
        role = await self.get_role_for(user)

        data = public_user(user)
        data["role_name"] = role.name if role else system_role_name_for(user.role)
        data["permissions"] = effective_permissions(user, role)
        return data

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _system_role_id(self, legacy_role: str) -> Optional[int]:
        return await self._session.scalar(
            select(Role.id).where(
                Role.name == system_role_name_for(legacy_role),
                Role.is_system_role.is_(True),
            )
        )

    @staticmethod
    def _check_role(role: str) -> None:
        if role not in VALID_ROLES:
            raise ValidationError(
                f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}", field="role", value=role
            )

    @staticmethod
    def _check_status(status: str) -> None:
        if status not in VALID_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}",
                field="status",
                value=status,
            )
