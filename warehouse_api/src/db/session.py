from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Union
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings


_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None

_SET_TENANT = text("SELECT set_config('app.tenant_id', :tenant_id, false)")


def _ensure_engine_initialized() -> None:
    """Create the engine (with the configured pool) and session factory lazily."""
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        settings = get_settings()
        _ENGINE = create_async_engine(settings.async_database_url, **settings.engine_options())
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(bind=_ENGINE, expire_on_commit=False, autoflush=False)


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    _ensure_engine_initialized()
    assert _ENGINE is not None
    return _ENGINE


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session without tenant context (see deps.get_tenant_session)."""
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    async with _SESSION_MAKER() as session:
        yield session


# PUBLIC_INTERFACE
@asynccontextmanager
async def session_scope(tenant_id: Union[str, UUID, None] = None) -> AsyncIterator[AsyncSession]:
    """
    Open a session outside of a request (websocket pushes, seeding).

    When tenant_id is given the session runs inside tenant_context().
    """
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    async with _SESSION_MAKER() as session:
        if tenant_id is None:
            yield session
        else:
            async with tenant_context(session, tenant_id):
                yield session


# PUBLIC_INTERFACE
async def set_current_tenant(session: AsyncSession, tenant_id: Union[str, UUID]) -> None:
    """
    Store the tenant in the `app.tenant_id` GUC of the session's connection.

    Every tenant-owned table has a policy comparing tenant_id against
    NULLIF(current_setting('app.tenant_id', true), '')::uuid.
    """
    await session.execute(_SET_TENANT, {"tenant_id": str(tenant_id)})


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_context(session: AsyncSession, tenant_id: Union[str, UUID]) -> AsyncGenerator[AsyncSession, None]:
    """Scope a session to one tenant; the GUC is cleared on exit so pooled connections see no rows."""
    await set_current_tenant(session, tenant_id)
    try:
        yield session
    finally:
        await session.execute(_SET_TENANT, {"tenant_id": ""})
