from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_permission
from src.core.permissions import (
    PermissionCode,
    RoleName,
    get_role_display_name,
    get_role_tier,
    permissions_for_roles,
)
from src.repositories.security import SecurityRepository
from src.schemas.auth import RoleRead

router = APIRouter(prefix="/admin/roles", tags=["Roles"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[RoleRead],
    summary="List roles",
    description="Every known role with its display name, tier and permissions. Roles not yet stored for the tenant have no id.",
    dependencies=[Depends(require_permission(PermissionCode.MANAGE_USERS, PermissionCode.VIEW_USERS))],
)
async def list_roles(session: AsyncSession = Depends(get_tenant_session)) -> List[RoleRead]:
    repo = SecurityRepository(session)
    stored = {r.name: r for r in await repo.list_roles(limit=1000)}
    result: List[RoleRead] = []
    for role in RoleName:
        row = stored.get(role.value)
        result.append(
            RoleRead(
                id=row.id if row else None,
                name=role.value,
                display_name=get_role_display_name(role),
                tier=get_role_tier(role),
                description=row.description if row else None,
                permissions=permissions_for_roles([role]),
            )
        )
    return result
