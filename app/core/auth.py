"""
Keycloak JWT Authentication middleware.

Validates Bearer tokens against the Keycloak JWKS endpoint, then resolves
the token's email to a Caller through the Role Authority.
Disabled in development via AUTH_ENABLED=false (caller becomes an admin).
"""
from __future__ import annotations

from typing import Optional

import httpx
import structlog
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.errors import AuthenticationError
from app.models.database import get_db
from app.services.role_authority import ProfileRoleAuthority
from app.workflow.roles import Caller, Role

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)

_jwks_cache: Optional[dict] = None


async def _fetch_jwks(keycloak_url: str) -> dict:
    global _jwks_cache
    if _jwks_cache:
        return _jwks_cache
    async with httpx.AsyncClient() as client:
        resp = await client.get(f"{keycloak_url}/protocol/openid-connect/certs")
        resp.raise_for_status()
        _jwks_cache = resp.json()
        return _jwks_cache


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    FastAPI dependency: extracts and validates the JWT.
    Returns the decoded token payload (claims).
    """
    if not settings.auth_enabled:
        return {"sub": "dev-user", "email": settings.dev_user_email, "name": "Dev User"}

    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    token = credentials.credentials
    try:
        jwks = await _fetch_jwks(settings.keycloak_url)
        unverified_header = jwt.get_unverified_header(token)
        key = next(
            (k for k in jwks.get("keys", []) if k["kid"] == unverified_header.get("kid")),
            None,
        )
        if not key:
            raise HTTPException(status_code=401, detail="Invalid token signing key")

        payload = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=settings.keycloak_audience,
            issuer=settings.keycloak_url,
        )
        return payload

    except JWTError as e:
        logger.warning("jwt_validation_failed", error=str(e))
        raise HTTPException(status_code=401, detail=f"Token validation failed: {e}")
    except httpx.HTTPError as e:
        logger.error("jwks_fetch_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Identity provider unavailable")


async def get_caller(
    claims: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Caller:
    """FastAPI dependency: the resolved caller passed into workflow operations."""
    if not settings.auth_enabled:
        return Caller(email=settings.dev_user_email, role=Role.ADMIN, is_active=True, name="Dev User")

    email = claims.get("email") or claims.get("preferred_username")
    if not email or "@" not in email:
        raise AuthenticationError("Token carries no email claim", code="missing_email_claim")

    caller = await ProfileRoleAuthority(db).resolve(email, name=claims.get("name"))
    logger.debug("caller_resolved", email=caller.email, role=caller.role.value, active=caller.is_active)
    return caller
