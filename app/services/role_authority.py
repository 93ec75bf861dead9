"""
Role Authority: resolves a caller identity to its highest role and active flag.

Backed by user_profiles. An authenticated email with no profile resolves to
an active staff caller.
"""
from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.renewal import UserProfile
from app.workflow.roles import Caller, Role, highest_role

logger = structlog.get_logger()


class ProfileRoleAuthority:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def resolve(self, email: str, name: Optional[str] = None) -> Caller:
        email = email.strip().lower()
        result = await self.db.execute(select(UserProfile).where(UserProfile.email == email))
        profile = result.scalar_one_or_none()

        if profile is None:
            logger.debug("caller_without_profile", email=email)
            return Caller(email=email, role=Role.STAFF, is_active=True, name=name)

        return Caller(
            email=email,
            role=highest_role(profile.roles or []),
            is_active=bool(profile.is_active),
            name=profile.name or name,
        )
