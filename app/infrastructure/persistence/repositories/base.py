"""Base repository: session handling and primary-key lookup for SQL repositories."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.infrastructure.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository over a session factory.

    Each public operation runs in its own short transaction (_transaction),
    so a queue claim or a state update is committed and visible to other
    workers as soon as the call returns.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], model: type[ModelType]
    ) -> None:
        self._session_factory = session_factory
        self.model = model

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Read-only session (no transaction block; closed on exit)."""
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside a transaction: commits on success, rolls back on exception."""
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def _get_orm(self, session: AsyncSession, entity_id: str) -> ModelType | None:
        model: Any = self.model
        result = await session.execute(select(self.model).where(model.id == entity_id))
        return result.scalar_one_or_none()
