from __future__ import annotations

from typing import Any, Iterable, Optional, Type

from sqlalchemy import Executable, func, select
from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Note:
      RLS enforcement is handled by Postgres using the `app.tenant_id` GUC.
      Ensure the session you're using has tenant context set via tenant_context.

      Write helpers only add/flush; the calling service commits once per
      operation so multi-row changes land in a single transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def count(self, model: Type[Any]) -> int:
        """Count rows of a model visible to the current tenant."""
        result = await self.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Roll back current transaction."""
        await self.session.rollback()

    async def flush(self) -> None:
        """Flush pending changes so generated ids and defaults are available."""
        await self.session.flush()

    async def refresh(self, entity: Any, attribute_names: Optional[Iterable[str]] = None) -> None:
        """Reload an entity's attributes (optionally only some) from the database."""
        await self.session.refresh(entity, attribute_names=list(attribute_names) if attribute_names else None)

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def delete(self, entity: Any) -> None:
        """Mark an entity for deletion."""
        await self.session.delete(entity)
