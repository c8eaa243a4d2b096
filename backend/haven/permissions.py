"""
Role and Permission Definitions

WHY: Centralized role grants ensure the API and any client mirror the same
policy. The table is built once at import and never mutated.

DESIGN PRINCIPLES:
- A grant is an (action, subject) pair
- "manage" covers every action on its subject
- "all" covers every subject for the granted action
- Unknown or missing roles are denied everything (fail closed)
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import NamedTuple


MANAGE = "manage"
ALL = "all"


class Role(str, Enum):
    """The single role enumeration shared by models, services and routes."""
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    ATTENDANT = "ATTENDANT"

    @classmethod
    def parse(cls, value) -> "Role | None":
        """Return the Role for ``value`` or None when it is not a known role."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class Grant(NamedTuple):
    action: str
    subject: str

    def covers(self, action: str, subject: str) -> bool:
        return (self.action == action or self.action == MANAGE) and (
            self.subject == subject or self.subject == ALL
        )

    def to_dict(self) -> dict:
        return {"action": self.action, "subject": self.subject}


# =============================================================================
# ROLE GRANTS
# =============================================================================

# WHY these grants:
# - ADMIN: manage/all supersedes everything else in the list
# - OWNER: runs the shop (stock, expenses) and reads reports
# - ATTENDANT: sells from the floor and sees stock levels

ROLE_GRANTS = MappingProxyType({
    Role.ADMIN: (
        Grant(MANAGE, ALL),
        Grant(MANAGE, "users"),
        Grant(MANAGE, "inventory"),
        Grant(MANAGE, "reports"),
        Grant(MANAGE, "settings"),
        Grant(MANAGE, "finances"),
    ),
    Role.OWNER: (
        Grant(MANAGE, "inventory"),
        Grant("read", "reports"),
        Grant(MANAGE, "expenses"),
        Grant("read", "notifications"),
    ),
    Role.ATTENDANT: (
        Grant("read", "inventory"),
        Grant(MANAGE, "sales"),
        Grant("read", "dashboard"),
    ),
})


def grants_for(role) -> tuple[Grant, ...]:
    """Grants for a role; an empty tuple for unknown roles."""
    parsed = Role.parse(role)
    if parsed is None:
        return ()
    return ROLE_GRANTS.get(parsed, ())


def can(role, action: str, subject: str) -> bool:
    """
    Decide whether ``role`` may perform ``action`` on ``subject``.

    Pure and side-effect free. Never raises: a missing or unknown role,
    or non-string action/subject, simply yields False.
    """
    if not isinstance(action, str) or not isinstance(subject, str):
        return False
    return any(grant.covers(action, subject) for grant in grants_for(role))


def all_roles() -> list[str]:
    return [role.value for role in Role]
