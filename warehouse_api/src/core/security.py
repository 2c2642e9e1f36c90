from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from src.core.settings import get_app_settings

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a bcrypt hash."""
    return _pwd_context.verify(plain_password, hashed_password)


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return _pwd_context.hash(password)


def _encode(claims: Dict[str, Any], lifetime: timedelta, token_type: str) -> str:
    settings = get_app_settings()
    now = datetime.now(tz=timezone.utc)
    payload = dict(claims)
    payload.update({"iat": now, "exp": now + lifetime, "type": token_type})
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def create_access_token(
    subject: str,
    tenant_id: str,
    roles: Optional[List[str]] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create an access token carrying the user id, tenant claim and role names."""
    settings = get_app_settings()
    lifetime = timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(
        {"sub": subject, "tenant_id": tenant_id, "roles": roles or []},
        lifetime,
        ACCESS_TOKEN_TYPE,
    )


# PUBLIC_INTERFACE
def create_refresh_token(subject: str, tenant_id: str, expires_minutes: Optional[int] = None) -> str:
    """Create a refresh token carrying only the user id and tenant claim."""
    settings = get_app_settings()
    lifetime = timedelta(minutes=expires_minutes or settings.REFRESH_TOKEN_EXPIRE_MINUTES)
    return _encode({"sub": subject, "tenant_id": tenant_id}, lifetime, REFRESH_TOKEN_TYPE)


# PUBLIC_INTERFACE
def create_token_pair(subject: str, tenant_id: str, roles: List[str]) -> Tuple[str, str]:
    """Return (access_token, refresh_token) for a user."""
    return (
        create_access_token(subject=subject, tenant_id=tenant_id, roles=roles),
        create_refresh_token(subject=subject, tenant_id=tenant_id),
    )


# PUBLIC_INTERFACE
def decode_token(token: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Decode and validate a JWT.

    Raises:
        JWTError: when the signature or expiry is invalid, or the token type
        differs from expected_type.
    """
    settings = get_app_settings()
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if expected_type is not None and claims.get("type") != expected_type:
        raise JWTError("Invalid token type")
    return claims
