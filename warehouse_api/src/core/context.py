from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from uuid import UUID

from src.core.errors import AuthorizationError
from src.core.permissions import PermissionCode, RoleName, has_any_permission, has_permission, is_site_wide


@dataclass(frozen=True)
class UserContext:
    """Authenticated caller as seen by services: identity, tenant, roles and sites."""

    user_id: UUID
    tenant_id: UUID
    email: str
    full_name: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    site_ids: List[UUID] = field(default_factory=list)
    is_superadmin: bool = False

    def has_role(self, *roles: str | RoleName) -> bool:
        if self.is_superadmin:
            return True
        wanted = {r.value if isinstance(r, RoleName) else r for r in roles}
        return not wanted.isdisjoint(self.roles)

    def can(self, permission: str | PermissionCode) -> bool:
        return self.is_superadmin or has_permission(self.roles, permission)

    def can_any(self, permissions: Iterable[str | PermissionCode]) -> bool:
        return self.is_superadmin or has_any_permission(self.roles, permissions)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    # PUBLIC_INTERFACE
    def ensure_site(self, site_id: UUID) -> None:
        """Raise AuthorizationError unless the user may act on site_id."""
        if self.is_superadmin or is_site_wide(self.roles):
            return
        if site_id not in self.site_ids:
            raise AuthorizationError("Site access denied")
