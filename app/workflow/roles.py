"""
Role hierarchy and the resolved caller.

Higher roles hold every permission of the lower ones:
    staff < reviewer (TIC) < approver < admin

A Caller is resolved once per request by the Role Authority
(app/services/role_authority.py) and passed explicitly into every workflow
operation; nothing in app/workflow looks identity up on its own.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from app.core.errors import AuthorizationError


class Role(str, Enum):
    STAFF = "staff"
    REVIEWER = "reviewer"
    APPROVER = "approver"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]

    @classmethod
    def parse(cls, value: str) -> Optional["Role"]:
        value = (value or "").strip().lower()
        if value == "tic":  # legacy name for the reviewer role
            return cls.REVIEWER
        try:
            return cls(value)
        except ValueError:
            return None


ROLE_RANK: dict[Role, int] = {
    Role.STAFF: 1,
    Role.REVIEWER: 2,
    Role.APPROVER: 3,
    Role.ADMIN: 4,
}


def highest_role(values: Iterable[str]) -> Role:
    """Highest recognised role in a profile's roles list; staff when none match."""
    parsed = [r for r in (Role.parse(v) for v in values or []) if r is not None]
    if not parsed:
        return Role.STAFF
    return max(parsed, key=lambda r: r.rank)


@dataclass(frozen=True)
class Caller:
    email: str
    role: Role = Role.STAFF
    is_active: bool = True
    name: Optional[str] = None

    def has_role(self, required: Role) -> bool:
        return self.is_active and self.role.rank >= required.rank

    def require(self, required: Role, action: str) -> None:
        if not self.is_active:
            raise AuthorizationError(
                "Account is inactive",
                code="account_inactive",
                current_role=self.role.value,
                action=action,
            )
        if self.role.rank < required.rank:
            raise AuthorizationError(
                f"'{action}' requires role {required.value} or higher",
                code="role_too_low",
                current_role=self.role.value,
                required_role=required.value,
                action=action,
            )
