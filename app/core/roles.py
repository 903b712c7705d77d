"""
Role table — the single typed source of truth for hierarchy roles.

Roles are declared in rank order. Every role's capability set is a strict
subset of the role ranked directly above it, so "higher role" always means
"can do everything the lower role can, and more".

Callers never compare role strings: parse once with ``Role.parse`` and then
ask ``has_capability`` / ``is_global``.

Usage:
    from app.core.roles import Role, Capability, has_capability

    role = Role.parse(user.role)
    if has_capability(role, Capability.MOVE_JOBS):
        ...
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Hierarchy role, highest first."""

    OWNER = "OWNER"
    ORG_ADMIN = "ORG_ADMIN"
    OFFICE_ADMIN = "OFFICE_ADMIN"
    DEPT_MANAGER = "DEPT_MANAGER"
    MEMBER = "MEMBER"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        """Return the Role for an enum member or its string value.

        Raises:
            ValueError: ``value`` is not a known role.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


class Capability:
    """Capability codenames granted through ROLE_CAPABILITIES."""

    MANAGE_BILLING = "manage_billing"
    MANAGE_ORG_SETTINGS = "manage_org_settings"
    VIEW_ALL_OFFICES = "view_all_offices"
    MANAGE_ALL_USERS = "manage_all_users"
    VIEW_ALL_USERS = "view_all_users"
    MANAGE_TEAMS = "manage_teams"
    VIEW_OFFICE = "view_office"
    MANAGE_OFFICE_USERS = "manage_office_users"
    MANAGE_DEPARTMENT_USERS = "manage_department_users"
    MOVE_JOBS = "move_jobs"
    CLAIM_JOBS = "claim_jobs"
    VIEW_DEPARTMENT = "view_department"
    VIEW_DEPARTMENT_USERS = "view_department_users"


# Built bottom-up: each role = the role below it + its own grants.
_MEMBER = (
    Capability.VIEW_DEPARTMENT,
    Capability.VIEW_DEPARTMENT_USERS,
)
_DEPT_MANAGER = _MEMBER + (
    Capability.CLAIM_JOBS,
    Capability.MOVE_JOBS,
    Capability.MANAGE_DEPARTMENT_USERS,
)
_OFFICE_ADMIN = _DEPT_MANAGER + (
    Capability.VIEW_OFFICE,
    Capability.MANAGE_OFFICE_USERS,
)
_ORG_ADMIN = _OFFICE_ADMIN + (
    Capability.VIEW_ALL_OFFICES,
    Capability.VIEW_ALL_USERS,
    Capability.MANAGE_ALL_USERS,
    Capability.MANAGE_TEAMS,
)
_OWNER = _ORG_ADMIN + (
    Capability.MANAGE_ORG_SETTINGS,
    Capability.MANAGE_BILLING,
)

ROLE_CAPABILITIES: dict[Role, tuple[str, ...]] = {
    Role.OWNER: _OWNER,
    Role.ORG_ADMIN: _ORG_ADMIN,
    Role.OFFICE_ADMIN: _OFFICE_ADMIN,
    Role.DEPT_MANAGER: _DEPT_MANAGER,
    Role.MEMBER: _MEMBER,
}

GLOBAL_ROLES = frozenset({Role.OWNER, Role.ORG_ADMIN})
OFFICE_BOUND_ROLES = frozenset({Role.OFFICE_ADMIN, Role.DEPT_MANAGER, Role.MEMBER})
DEPARTMENT_BOUND_ROLES = frozenset({Role.DEPT_MANAGER, Role.MEMBER})

_RANK = {role: index for index, role in enumerate(Role)}


def rank(role: Role | str) -> int:
    """0 for OWNER, increasing downwards."""
    return _RANK[Role.parse(role)]


def capabilities_for(role: Role | str) -> tuple[str, ...]:
    return ROLE_CAPABILITIES[Role.parse(role)]


def has_capability(role: Role | str, capability: str) -> bool:
    return capability in ROLE_CAPABILITIES[Role.parse(role)]


def is_global(role: Role | str) -> bool:
    """True for roles that see every office of their organization."""
    return Role.parse(role) in GLOBAL_ROLES


def validate_membership(role: Role | str, office_id: str | None, department_id: str | None) -> None:
    """Check the hierarchy fields a role requires.

    Raises:
        ValueError: a required office/department id is missing.
    """
    role = Role.parse(role)
    if role in OFFICE_BOUND_ROLES and not office_id:
        raise ValueError(f"{role.value} requires office_id")
    if role in DEPARTMENT_BOUND_ROLES and not department_id:
        raise ValueError(f"{role.value} requires department_id")
