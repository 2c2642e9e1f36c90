from __future__ import annotations

import logging
from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import AuthorizationError
from src.core.logging import user_id_var
from src.core.permissions import PermissionCode, RoleName
from src.core.security import ACCESS_TOKEN_TYPE, decode_token
from src.db.session import get_async_session, tenant_context
from src.repositories.security import SecurityRepository

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# PUBLIC_INTERFACE
async def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID")) -> UUID:
    """
    Extract and validate the tenant id from the X-Tenant-ID header.

    Raises:
        HTTPException: 400 Bad Request if header missing or invalid UUID.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required.",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header must be a valid UUID string.",
        )


# PUBLIC_INTERFACE
async def get_tenant_session(
    tenant_id: UUID = Depends(get_tenant_id),
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession with Row-Level Security configured for the tenant.

    The Postgres GUC `app.tenant_id` is set while the session is in use and
    reset afterwards.
    """
    async for session in session_dep:
        async with tenant_context(session, tenant_id):
            yield session


# PUBLIC_INTERFACE
async def get_session_no_tenant(
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession without tenant context (health checks, seeding)."""
    async for session in session_dep:
        yield session


# PUBLIC_INTERFACE
async def get_current_user(
    tenant_id: UUID = Depends(get_tenant_id),
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_tenant_session),
):
    """
    Resolve the current user from the Authorization bearer token.

    The token tenant claim must match the X-Tenant-ID header; the user is loaded
    through the RLS-scoped session.
    """
    try:
        payload = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    tok_tenant = payload.get("tenant_id")
    if not tok_tenant or str(tok_tenant) != str(tenant_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant mismatch")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(user_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


# PUBLIC_INTERFACE
async def get_current_active_user(user=Depends(get_current_user)):
    """Ensure user is active."""
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


# PUBLIC_INTERFACE
async def get_user_context(
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserContext:
    """Build the UserContext (roles and site memberships) for the current user."""
    repo = SecurityRepository(session)
    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    site_ids = await repo.list_site_ids_for_user(user.id)
    user_id_var.set(str(user.id))
    return UserContext(
        user_id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        full_name=user.full_name,
        roles=roles,
        site_ids=site_ids,
        is_superadmin=bool(user.is_superadmin),
    )


# PUBLIC_INTERFACE
def require_roles(*required: str | RoleName):
    """
    Create a dependency that requires the current user to hold one of the roles.

    The dependency returns the UserContext so handlers can use it directly.
    """

    async def _dep(ctx: UserContext = Depends(get_user_context)) -> UserContext:
        if not ctx.has_role(*required):
            logger.info("Role check failed: required=%s held=%s", [getattr(r, "value", r) for r in required], ctx.roles)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return ctx

    return _dep


# PUBLIC_INTERFACE
def require_permission(*required: str | PermissionCode):
    """
    Create a dependency that requires any of the given permissions, resolved
    through the role permission matrix.
    """

    async def _dep(ctx: UserContext = Depends(get_user_context)) -> UserContext:
        if not ctx.can_any(required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return ctx

    return _dep


# PUBLIC_INTERFACE
def require_site_access(ctx: UserContext, site_id: UUID) -> None:
    """Raise 403 unless the user may act on the site (Admin and Executive see every site)."""
    try:
        ctx.ensure_site(site_id)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
