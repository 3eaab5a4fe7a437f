"""
Service Base
============
Session ownership shared by every service class.
"""

from typing import Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import get_settings
from exceptions import ConflictError
from database.session import build_engine

S = TypeVar("S", bound="BaseService")


class BaseService:
    """
    Base for database-backed services.

    Usage:
        async with UserService(db_url) as service:
            users = await service.list_users()

    Or with an existing session (the caller commits):
        service = UserService.from_session(session)
        users = await service.list_users()
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Args:
            database_url: SQLAlchemy async database URL.
                If None, uses the configured DATABASE_URL.
        """
        self._database_url = database_url or get_settings().database_url
        self._engine = None
        self._session_factory = None
        self._session: Optional[AsyncSession] = None
        self._owns_session = True

    @classmethod
    def from_session(cls: Type[S], session: AsyncSession) -> S:
        """
        Create a service using an existing session.

        Use this to participate in an external transaction.
        """
        instance = cls.__new__(cls)
        instance._database_url = None
        instance._session = session
        instance._owns_session = False
        instance._engine = None
        instance._session_factory = None
        return instance

    async def __aenter__(self: S) -> S:
        if self._owns_session:
            self._engine = build_engine(self._database_url)
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Commit on success, roll back on error, then release the engine."""
        if self._owns_session and self._session:
            if exc_type is not None:
                await self._session.rollback()
            else:
                await self._session.commit()
            await self._session.close()

        if self._engine:
            await self._engine.dispose()

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _flush(
        self,
        conflict_message: str = "Record conflicts with existing data",
        resource: Optional[str] = None,
        status_code: int = 409,
    ) -> None:
        """
        Flush pending changes.

        Raises:
            ConflictError: On a unique or foreign key violation. The session
                is rolled back first so it stays usable.
        """
        try:
            await self._session.flush()
        except IntegrityError as e:
            await self._session.rollback()
            raise ConflictError(conflict_message, resource=resource, status_code=status_code) from e
