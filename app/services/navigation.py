"""
Navigation filter — declarative menu catalog reduced to what a user may open.

An entry survives when the role is allowed AND the active context (global,
office or department, derived from the resolved Scope) is one the entry
applies in. Surviving entries get ``:officeId`` / ``:departmentId`` filled
from the scope, falling back to the user's own office/department when the
scope is ALL. An entry whose path still has an unfilled placeholder is
dropped, so a rendered link always resolves to a legal scope.

Usage:
    from app.services.navigation import NAV_CATALOG, filter_navigation

    entries = filter_navigation(NAV_CATALOG, user.role, scope, user=user)
    sections = group_navigation(entries)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from app.core.roles import Role
from app.services.scope_resolver import (
    ALL,
    CONTEXT_DEPARTMENT,
    CONTEXT_GLOBAL,
    CONTEXT_OFFICE,
    Scope,
    scope_context,
)

logger = logging.getLogger(__name__)

OFFICE_PLACEHOLDER = ":officeId"
DEPARTMENT_PLACEHOLDER = ":departmentId"

SECTIONS = ("primary", "organize", "measure", "configure", "utilities")


@dataclass(frozen=True)
class NavEntry:
    id: str
    label: str
    path: str
    roles_allowed: frozenset
    contexts: frozenset
    section: str = "primary"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "path": self.path,
            "section": self.section,
        }


def _entry(entry_id, label, path, roles, contexts, section="primary") -> NavEntry:
    return NavEntry(
        id=entry_id,
        label=label,
        path=path,
        roles_allowed=frozenset(Role.parse(r) for r in roles),
        contexts=frozenset(contexts),
        section=section,
    )


_EVERYONE = tuple(Role)
_GLOBAL_ADMINS = (Role.OWNER, Role.ORG_ADMIN)
_OFFICE_ADMINS = (Role.OWNER, Role.ORG_ADMIN, Role.OFFICE_ADMIN)
_MANAGERS = (Role.OWNER, Role.ORG_ADMIN, Role.OFFICE_ADMIN, Role.DEPT_MANAGER)
_DEPARTMENT_BOUND = (Role.DEPT_MANAGER, Role.MEMBER)

_G = (CONTEXT_GLOBAL,)
_O = (CONTEXT_OFFICE,)
_D = (CONTEXT_DEPARTMENT,)

NAV_CATALOG: tuple[NavEntry, ...] = (
    # Global (enterprise)
    _entry("global-dashboard", "Hub Pulse", "/", _EVERYONE, _G),
    _entry("global-kanban", "Operations Board", "/kanban", _GLOBAL_ADMINS, _G),
    _entry("global-jobs", "Jobs / Claims", "/jobs", _GLOBAL_ADMINS, _G),
    _entry("global-dispatch", "Dispatch", "/dispatch", _GLOBAL_ADMINS, _G),
    _entry("global-offices", "Offices", "/offices", _GLOBAL_ADMINS, _G, "organize"),
    _entry("global-departments", "Departments", "/departments", _GLOBAL_ADMINS, _G, "organize"),
    _entry("global-users", "Team", "/users", _GLOBAL_ADMINS, _G, "organize"),
    _entry("global-reports-ops", "Operational Reports", "/reports/ops", _GLOBAL_ADMINS, _G, "measure"),
    _entry("global-reports-fin", "Financial Reports", "/reports/financial", _GLOBAL_ADMINS, _G, "measure"),
    _entry("global-settings", "Org Settings", "/settings/org", _GLOBAL_ADMINS, _G, "configure"),
    _entry("global-billing", "Billing & Plan", "/billing", (Role.OWNER,), _G, "configure"),
    # Office
    _entry("office-dashboard", "Hub Pulse", "/office/:officeId/dashboard", _OFFICE_ADMINS, _O),
    _entry("office-kanban", "Operations Board", "/office/:officeId/kanban", _OFFICE_ADMINS, _O),
    _entry("office-jobs", "Jobs / Claims", "/office/:officeId/jobs", _OFFICE_ADMINS, _O),
    _entry("office-dispatch", "Dispatch", "/office/:officeId/dispatch", _OFFICE_ADMINS, _O),
    _entry("office-departments", "Departments", "/office/:officeId/depts", _OFFICE_ADMINS, _O, "organize"),
    _entry("office-team", "Team", "/office/:officeId/team", _OFFICE_ADMINS, _O, "organize"),
    _entry("office-settings", "Office Settings", "/office/:officeId/settings", _OFFICE_ADMINS, _O, "configure"),
    # Department
    _entry("dept-dashboard", "Hub Pulse",
           "/office/:officeId/department/:departmentId", _EVERYONE, _D),
    _entry("dept-kanban", "Operations Board",
           "/office/:officeId/department/:departmentId/kanban", _EVERYONE, _D),
    _entry("dept-jobs", "Jobs / Claims",
           "/office/:officeId/department/:departmentId/jobs", _EVERYONE, _D),
    _entry("dept-dispatch", "Dispatch",
           "/office/:officeId/department/:departmentId/dispatch", _MANAGERS, _D),
    _entry("dept-tasks", "Tasks",
           "/office/:officeId/department/:departmentId/tasks", _EVERYONE, _D),
    _entry("dept-team", "Team",
           "/office/:officeId/department/:departmentId/team", _MANAGERS, _D, "organize"),
    # Personal shortcuts for department-bound roles
    _entry("member-jobs", "My Assigned Jobs", "/jobs?scope=my", _DEPARTMENT_BOUND, _D),
    _entry("member-tasks", "My Tasks", "/tasks?scope=my", _DEPARTMENT_BOUND, _D),
    # Utilities
    _entry("util-uploads", "Quick Upload", "/uploads", _EVERYONE, _G + _O + _D, "utilities"),
    _entry("util-help", "Help", "/help", _EVERYONE, _G + _O + _D, "utilities"),
)


def _concrete(value) -> str | None:
    return None if value in (None, ALL) else value


def _own(user, name):
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get(name)
    return getattr(user, name, None)


def _substitute(path: str, office_id: str | None, department_id: str | None) -> str | None:
    if OFFICE_PLACEHOLDER in path:
        if not office_id:
            return None
        path = path.replace(OFFICE_PLACEHOLDER, office_id)
    if DEPARTMENT_PLACEHOLDER in path:
        if not department_id:
            return None
        path = path.replace(DEPARTMENT_PLACEHOLDER, department_id)
    return path


def filter_navigation(catalog, role, scope: Scope, *, user=None) -> list[NavEntry]:
    """Return the catalog entries ``role`` may open in ``scope``, paths resolved."""
    role = Role.parse(role)
    context = scope_context(scope)
    office_id = _concrete(scope.office_id) or _own(user, "office_id")
    department_id = _concrete(scope.department_id) or _own(user, "department_id")

    result: list[NavEntry] = []
    for entry in catalog:
        if role not in entry.roles_allowed:
            continue
        if context not in entry.contexts:
            continue
        path = _substitute(entry.path, office_id, department_id)
        if path is None:
            logger.debug("nav entry %s dropped: unresolved placeholder in %s", entry.id, entry.path)
            continue
        result.append(replace(entry, path=path))
    return result


def group_navigation(entries) -> dict[str, list[NavEntry]]:
    """Group entries by section for rendering (sections in display order)."""
    groups: dict[str, list[NavEntry]] = {section: [] for section in SECTIONS}
    for entry in entries:
        groups.setdefault(entry.section, []).append(entry)
    return groups
