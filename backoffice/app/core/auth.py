"""
Bearer-token identity for the order API.

Tokens are issued by the storefront's auth service; this module only verifies
them and exposes the caller as a ``Principal``. ``create_access_token`` exists
for operational scripts and tests that need a signed token.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

from backoffice.app.core.clock import utcnow
from backoffice.app.core.settings import get_settings

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CUSTOMER, ROLE_ADMIN)

DEFAULT_TOKEN_TTL_MINUTES = 60 * 24


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def _secret() -> str:
    secret = get_settings().JWT_SECRET
    if not secret:
        raise HTTPException(status_code=503, detail="Authentication not configured (JWT_SECRET missing)")
    return secret


def create_access_token(subject: str, role: str = ROLE_CUSTOMER, expires_minutes: int = DEFAULT_TOKEN_TTL_MINUTES) -> str:
    """Sign a token for ``subject`` with the given role."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    now = utcnow()
    payload = {
        "sub": str(subject),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, _secret(), algorithm=get_settings().JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Principal]:
    """Return the principal carried by ``token`` or None if the token is invalid."""
    try:
        payload = jwt.decode(token, _secret(), algorithms=[get_settings().JWT_ALGORITHM])
        role = payload.get("role", ROLE_CUSTOMER)
        if role not in ROLES:
            return None
        subject = str(payload["sub"])
        if not subject:
            return None
        return Principal(user_id=subject, role=role)
    except (jwt.InvalidTokenError, KeyError):
        return None


async def get_current_principal(authorization: Optional[str] = Header(None)) -> Principal:
    """
    FastAPI dependency resolving the caller from ``Authorization: Bearer <token>``.

    Raises:
        HTTPException 401: If the header is missing or the token is invalid
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")

    principal = decode_access_token(token.strip())
    if principal is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return principal


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency for back-office endpoints: 403 for non-admin callers."""
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return principal
