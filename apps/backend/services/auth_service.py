"""
Auth Service
============
Password login and server-side bearer sessions.

Tokens are random and only their keyed digest is persisted.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import delete, func, select

import metrics as app_metrics
from config import get_settings
from exceptions import AuthenticationError, PermissionDeniedError
from models import AuthSession, Role, User, UserRole, UserStatus, utcnow
from security import hash_password, hash_token, new_session_token, verify_password
from services.base import BaseService
from services.permissions import ADMINISTRATOR

logger = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Credential checks and session lifecycle.

    Usage:
        service = AuthService.from_session(session)
        user = await service.authenticate("alice", "secret")
        token, expires_at = await service.create_session(user)
    """

    @property
    def _secret(self) -> str:
        return get_settings().session_secret

    # =========================================================================
    # Credentials
    # =========================================================================

    async def get_user_by_username(self, username: str) -> Optional[User]:
        result = await self._session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def authenticate(self, username: str, password: str) -> User:
        """
        Check a username/password pair.

        Raises:
            AuthenticationError: Unknown user or wrong password
            PermissionDeniedError: Account is disabled or pending
        """
        user = await self.get_user_by_username(username)

        if user is None or not verify_password(password, user.password):
            app_metrics.auth_attempts_total.labels(outcome="invalid").inc()
            logger.info(f"Failed login attempt for username={username!r}")
            raise AuthenticationError("Invalid username or password")

        if not user.is_active:
            app_metrics.auth_attempts_total.labels(outcome="inactive").inc()
            raise PermissionDeniedError(
                f"Account is {user.status}", action="login", user_id=user.id
            )

        app_metrics.auth_attempts_total.labels(outcome="success").inc()
        return user

    async def verify_admin_password(self, user: User, password: str) -> bool:
        """Re-check the password of an administrator before a destructive action."""
        if not user.is_admin:
            raise PermissionDeniedError(
                "Only administrators can confirm this action",
                action="verify_admin_password",
                user_id=user.id,
            )
        return verify_password(password, user.password)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, user: User) -> Tuple[str, datetime]:
        """
        Open a session for a user.

        Returns:
            The plain bearer token (shown once) and its expiry time.
        """
        token = new_session_token()
        expires_at = utcnow() + timedelta(hours=get_settings().session_ttl_hours)

        self._session.add(AuthSession(
            token_hash=hash_token(token, self._secret),
            user_id=user.id,
            expires_at=expires_at,
        ))
        await self._flush("Could not create session", resource="session")

        app_metrics.active_sessions.inc()
        logger.info(f"Session created for user_id={user.id}")
        return token, expires_at

    async def resolve_session(self, token: str) -> User:
        """
        Return the active user owning a bearer token.

        Raises:
            AuthenticationError: Unknown or expired token, or inactive user
        """
        if not token:
            raise AuthenticationError()

        stmt = (
            select(AuthSession, User)
            .join(User, User.id == AuthSession.user_id)
            .where(AuthSession.token_hash == hash_token(token, self._secret))
        )
        row = (await self._session.execute(stmt)).first()
        if row is None:
            raise AuthenticationError("Invalid session")

        auth_session, user = row
        if auth_session.expires_at <= utcnow():
            await self._session.delete(auth_session)
            await self._session.flush()
            raise AuthenticationError("Session expired")

        if not user.is_active:
            raise AuthenticationError("Account is not active")

        return user

    async def revoke_session(self, token: str) -> bool:
        result = await self._session.execute(
            delete(AuthSession).where(AuthSession.token_hash == hash_token(token, self._secret))
        )
        if result.rowcount > 0:
            app_metrics.active_sessions.dec(result.rowcount)
            return True
        return False

    async def revoke_user_sessions(self, user_id: int) -> int:
        """Delete every session of a user. Returns the number removed."""
        result = await self._session.execute(
            delete(AuthSession).where(AuthSession.user_id == user_id)
        )
        if result.rowcount:
            app_metrics.active_sessions.dec(result.rowcount)
            logger.info(f"Revoked {result.rowcount} session(s) for user_id={user_id}")
        return result.rowcount or 0

    async def purge_expired_sessions(self) -> int:
        result = await self._session.execute(
            delete(AuthSession).where(AuthSession.expires_at <= utcnow())
        )
        purged = result.rowcount or 0

        remaining = await self._session.scalar(select(func.count(AuthSession.id)))
        app_metrics.active_sessions.set(remaining or 0)

        if purged:
            logger.info(f"Purged {purged} expired session(s)")
        return purged

    # =========================================================================
    # Bootstrap
    # =========================================================================

    async def ensure_admin(
        self,
        username: str,
        password: str,
        email: str,
    ) -> Optional[User]:
        """
        Create the bootstrap administrator if the username is free.

        Returns:
            The new user, or None when the username already exists.
        """
        if await self.get_user_by_username(username) is not None:
            return None

        role_id = await self._session.scalar(select(Role.id).where(Role.name == ADMINISTRATOR))
        user = User(
            username=username,
            password=hash_password(password),
            email=email,
            name="Administrator",
            role=UserRole.ADMIN.value,
            status=UserStatus.ACTIVE.value,
            custom_role_id=role_id,
        )
        self._session.add(user)
        await self._flush(f"User '{username}' already exists", resource="user")

        logger.info(f"Bootstrap administrator created: {username}")
        return user
