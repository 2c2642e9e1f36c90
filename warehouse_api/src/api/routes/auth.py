from __future__ import annotations

import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_active_user, get_tenant_id, get_tenant_session
from src.core.permissions import RoleName, get_role_display_name, permissions_for_roles
from src.core.rate_limit import login_rate_limiter
from src.core.security import (
    REFRESH_TOKEN_TYPE,
    create_token_pair,
    decode_token,
    get_password_hash,
    verify_password,
)
from src.repositories.security import SecurityRepository
from src.schemas.auth import (
    Message,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UserRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


# PUBLIC_INTERFACE
async def build_user_read(repo: SecurityRepository, user) -> UserRead:
    """UserRead with the user's roles, the permissions they grant and site memberships."""
    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    return UserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        is_superadmin=user.is_superadmin,
        created_at=user.created_at,
        updated_at=user.updated_at,
        roles=roles,
        permissions=permissions_for_roles(roles),
        site_ids=await repo.list_site_ids_for_user(user.id),
    )


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=UserRead,
    summary="Register user",
    description="Create a new user for the current tenant. The first user of a tenant is given the Admin role.",
)
async def register_user(
    payload: RegisterRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    """Register a new user under the tenant."""
    repo = SecurityRepository(session)
    existing = await repo.get_user_by_email(payload.email)
    if existing:
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = await repo.create_user(
        email=payload.email, full_name=payload.full_name, hashed_password=get_password_hash(payload.password)
    )

    if await repo.count_users() == 1:
        role = await repo.ensure_role(RoleName.ADMIN.value, get_role_display_name(RoleName.ADMIN))
        await repo.assign_role_to_user(user.id, role.id)
        logger.info("First user of tenant %s registered as Admin: %s", tenant_id, user.email)
    else:
        await repo.commit()

    return await build_user_read(repo, user)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate using OAuth2 password form and receive access/refresh tokens. Attempts are rate limited per tenant and email.",
)
async def login_for_tokens(
    form_data: OAuth2PasswordRequestForm = Depends(),
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    """Authenticate user and issue tokens."""
    limiter_key = f"{tenant_id}:{form_data.username.lower()}"
    login_rate_limiter.hit(limiter_key)

    repo = SecurityRepository(session)
    user = await repo.get_user_by_email(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", form_data.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is inactive")

    login_rate_limiter.reset(limiter_key)
    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    access, refresh = create_token_pair(subject=str(user.id), tenant_id=str(tenant_id), roles=roles)
    return TokenPair(access_token=access, refresh_token=refresh)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new token pair from a valid refresh token.",
)
async def refresh_token(
    payload: RefreshRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    """Validate refresh token and issue a new access token pair."""
    try:
        claims: Dict[str, Any] = decode_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    if claims.get("type") != REFRESH_TOKEN_TYPE:
        raise HTTPException(status_code=401, detail="Invalid token type")
    if str(tenant_id) != str(claims.get("tenant_id")):
        raise HTTPException(status_code=403, detail="Tenant mismatch")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(claims.get("sub")))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    roles = [r.name for r in await repo.list_roles_for_user(user.id)]
    access, refresh = create_token_pair(subject=str(user.id), tenant_id=str(tenant_id), roles=roles)
    return TokenPair(access_token=access, refresh_token=refresh)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=Message,
    summary="Logout",
    description="Stateless logout. Clients should discard tokens. No server state maintained.",
)
async def logout() -> Message:
    """Acknowledge logout in stateless JWT systems."""
    return Message(message="Logged out")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserRead,
    summary="Read current user",
    description="Return the current user with roles, effective permissions and site ids.",
)
async def read_current_user(
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    return await build_user_read(SecurityRepository(session), user)
