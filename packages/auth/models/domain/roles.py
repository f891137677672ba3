"""
Organization roles, resolved once at the authentication boundary.
"""

from enum import Enum
from typing import Optional


class OrganizationRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @property
    def can_manage_billing(self) -> bool:
        return self in (OrganizationRole.OWNER, OrganizationRole.ADMIN)

    @property
    def can_manage_members(self) -> bool:
        return self.can_manage_billing

    @classmethod
    def from_tokens(cls, raw: Optional[str]) -> "OrganizationRole":
        """
        Parse a comma-joined role list (``"member,admin"``) into one role.

        The highest recognised role wins; unknown tokens are ignored and an
        empty or unrecognised list falls back to MEMBER.
        """
        best = cls.MEMBER
        for token in (raw or "").split(","):
            try:
                role = cls(token.strip().upper())
            except ValueError:
                continue
            if role.rank > best.rank:
                best = role
        return best


_ROLE_RANK = {
    OrganizationRole.MEMBER: 0,
    OrganizationRole.ADMIN: 1,
    OrganizationRole.OWNER: 2,
}
