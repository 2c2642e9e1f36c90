from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.routes.auth import build_user_read
from src.core.deps import get_tenant_session, require_permission
from src.core.permissions import PermissionCode
from src.core.security import get_password_hash
from src.repositories.security import SecurityRepository
from src.repositories.tenancy import SiteRepository
from src.schemas.auth import UserCreate, UserRead, UserUpdate

router = APIRouter(prefix="/admin/users", tags=["Users"])

_manage_users = [Depends(require_permission(PermissionCode.MANAGE_USERS))]


async def _get_user_or_404(repo: SecurityRepository, user_id: UUID):
    user = await repo.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[UserRead],
    summary="List users",
    description="List users for the current tenant.",
    dependencies=_manage_users,
)
async def list_users(
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = 100,
    offset: int = 0,
) -> List[UserRead]:
    repo = SecurityRepository(session)
    return [await build_user_read(repo, u) for u in await repo.list_users(limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    description="Create a user. Requires the manage_users permission.",
    dependencies=_manage_users,
)
async def create_user(
    payload: UserCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    if await repo.get_user_by_email(payload.email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = await repo.create_user(
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password),
        is_active=payload.is_active if payload.is_active is not None else True,
        is_superadmin=payload.is_superadmin if payload.is_superadmin is not None else False,
    )
    await repo.commit()
    return await build_user_read(repo, user)


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}",
    response_model=UserRead,
    summary="Get user",
    dependencies=_manage_users,
)
async def get_user(
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    return await build_user_read(repo, await _get_user_or_404(repo, user_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{user_id}",
    response_model=UserRead,
    summary="Update user",
    dependencies=_manage_users,
)
async def update_user(
    payload: UserUpdate,
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    updated = await repo.update_user(
        user_id,
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password) if payload.password else None,
        is_active=payload.is_active,
        is_superadmin=payload.is_superadmin,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return await build_user_read(repo, updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
    dependencies=_manage_users,
)
async def delete_user(
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> None:
    repo = SecurityRepository(session)
    await _get_user_or_404(repo, user_id)
    await repo.delete_user(user_id)


# PUBLIC_INTERFACE
@router.post(
    "/{user_id}/roles/{role_id}",
    response_model=UserRead,
    summary="Assign role to user",
    dependencies=_manage_users,
)
async def assign_role(
    user_id: UUID,
    role_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(user_id)
    role = await repo.get_role_by_id(role_id)
    if not user or not role:
        raise HTTPException(status_code=404, detail="User or role not found")
    await repo.assign_role_to_user(user_id, role_id)
    return await build_user_read(repo, user)


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}/roles/{role_id}",
    response_model=UserRead,
    summary="Remove role from user",
    dependencies=_manage_users,
)
async def remove_role(
    user_id: UUID,
    role_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await _get_user_or_404(repo, user_id)
    await repo.remove_role_from_user(user_id, role_id)
    return await build_user_read(repo, user)


# PUBLIC_INTERFACE
@router.post(
    "/{user_id}/sites/{site_id}",
    response_model=UserRead,
    summary="Assign site to user",
    description="Give the user access to a site.",
    dependencies=_manage_users,
)
async def assign_site(
    user_id: UUID,
    site_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(user_id)
    site = await SiteRepository(session).get_site(site_id)
    if not user or not site:
        raise HTTPException(status_code=404, detail="User or site not found")
    await repo.assign_site_to_user(user_id, site_id)
    return await build_user_read(repo, user)


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}/sites/{site_id}",
    response_model=UserRead,
    summary="Remove site from user",
    dependencies=_manage_users,
)
async def remove_site(
    user_id: UUID,
    site_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await _get_user_or_404(repo, user_id)
    await repo.remove_site_from_user(user_id, site_id)
    return await build_user_read(repo, user)
