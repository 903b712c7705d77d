"""
Scope resolver — effective visibility scope for a user and navigation request.

Scope hierarchy:
  organization > office > department

Resolution is deterministic and deny-by-default:
  - OWNER / ORG_ADMIN may look at any office/department of their org;
    with no request they see ALL of it.
  - OFFICE_ADMIN is pinned to their own office; any department of that
    office may be requested.
  - DEPT_MANAGER / MEMBER are pinned to their own office and department.
  - Roles without the move_jobs capability (MEMBER) are read-assigned-only:
    the scope carries their user id and admits only jobs assigned to them.
  - A request outside the pinned scope raises ScopeDeniedError. It is never
    silently narrowed, the caller must redirect instead.

resolve_scope() is a pure function of (user, request, directory): no cache,
no I/O. Call it again whenever the user or the navigation context changes.

Usage:
    from app.services.scope_resolver import resolve_scope, apply_scope

    scope = resolve_scope(user, requested_office_id=office_id)
    jobs = apply_scope(Job.query, Job, scope).all()
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from sqlalchemy import String, cast

from app.core.exceptions import ScopeDeniedError
from app.core.roles import Capability, Role, has_capability, is_global, validate_membership

logger = logging.getLogger(__name__)

ALL = "ALL"

CONTEXT_GLOBAL = "global"
CONTEXT_OFFICE = "office"
CONTEXT_DEPARTMENT = "department"


@dataclass(frozen=True)
class Scope:
    """Resolved visibility scope. Derived per request, never stored."""

    org_id: str
    office_id: str
    department_id: str | None
    can_write: bool = False
    # Set for read-assigned-only scopes: jobs must list this user as assignee.
    assigned_to: str | None = None

    @property
    def is_org_wide(self) -> bool:
        return self.office_id == ALL

    def covers(self, org_id, office_id, department_id) -> bool:
        """True when a record with these hierarchy ids lies inside the scope."""
        if org_id != self.org_id:
            return False
        if self.office_id != ALL and office_id != self.office_id:
            return False
        if self.department_id not in (None, ALL) and department_id != self.department_id:
            return False
        return True

    def admits(self, job) -> bool:
        """True when a job record lies inside the scope and, for an
        assigned-only scope, lists ``assigned_to`` among its assignees."""
        if not self.covers(_field(job, "org_id"), _field(job, "office_id"), _field(job, "department_id")):
            return False
        if self.assigned_to is None:
            return True
        return self.assigned_to in (_field(job, "assigned_user_ids") or ())

    def to_dict(self) -> dict:
        return {
            "org_id": self.org_id,
            "office_id": self.office_id,
            "department_id": self.department_id,
            "can_write": self.can_write,
            "assigned_to": self.assigned_to,
            "context": scope_context(self),
        }


@dataclass(frozen=True)
class OrgDirectory:
    """Ownership index of one organization's offices and departments.

    offices:      office_id → org_id
    departments:  department_id → (org_id, office_id)
    """

    offices: dict[str, str] = field(default_factory=dict)
    departments: dict[str, tuple[str, str]] = field(default_factory=dict)

    def office_of(self, department_id: str) -> str | None:
        entry = self.departments.get(department_id)
        return entry[1] if entry else None


def _field(record, name):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _deny(user, message, *, office_id=None, department_id=None):
    logger.warning(
        "scope_denied user_id=%s role=%s requested_office_id=%s requested_department_id=%s reason=%s",
        _field(user, "id"), _field(user, "role"), office_id, department_id, message,
    )
    return ScopeDeniedError(
        message,
        user_id=_field(user, "id"),
        requested_office_id=office_id,
        requested_department_id=department_id,
    )


def _check_directory(user, org_id, office_id, department_id, directory: OrgDirectory | None):
    """Reject ids that belong to another org or a department of another office."""
    if directory is None:
        return
    if office_id not in (None, ALL) and directory.offices.get(office_id) != org_id:
        raise _deny(user, "Office is not part of your organization",
                    office_id=office_id, department_id=department_id)
    if department_id not in (None, ALL):
        entry = directory.departments.get(department_id)
        if entry is None or entry[0] != org_id:
            raise _deny(user, "Department is not part of your organization",
                        office_id=office_id, department_id=department_id)
        if office_id not in (None, ALL) and entry[1] != office_id:
            raise _deny(user, "Department does not belong to the requested office",
                        office_id=office_id, department_id=department_id)


def resolve_scope(
    user,
    requested_office_id: str | None = None,
    requested_department_id: str | None = None,
    *,
    directory: OrgDirectory | None = None,
) -> Scope:
    """Compute the effective scope for ``user`` and an optional navigation request.

    Args:
        user: User model, dict, or any object with id/role/org_id/office_id/department_id.
        requested_office_id: Office from the navigation context, if any.
        requested_department_id: Department from the navigation context, if any.
        directory: Optional ownership index; enables cross-org and
                   department/office consistency checks. Without it an
                   OFFICE_ADMIN asking for a department of another office
                   gets an empty Scope(own_office, that_department) rather
                   than ScopeDeniedError. Callers acting on ids from a
                   request should pass ``build_directory(user.org_id)``.

    Raises:
        ScopeDeniedError: the request lies outside the user's hierarchy.
        ValueError: the user record is missing hierarchy fields its role
                    requires (caller bug).
    """
    role = Role.parse(_field(user, "role"))
    org_id = _field(user, "org_id")
    own_office = _field(user, "office_id")
    own_department = _field(user, "department_id")
    if not org_id:
        raise ValueError("user.org_id is required")
    validate_membership(role, own_office, own_department)

    requested_office_id = requested_office_id or None
    requested_department_id = requested_department_id or None
    can_write = has_capability(role, Capability.MOVE_JOBS)
    assigned_to = None if can_write else _field(user, "id")
    if not can_write and not assigned_to:
        raise ValueError("user.id is required for a read-assigned-only role")

    if is_global(role):
        office_id = requested_office_id
        if office_id is None and requested_department_id and directory is not None:
            office_id = directory.office_of(requested_department_id)
        _check_directory(user, org_id, office_id, requested_department_id, directory)
        return Scope(
            org_id=org_id,
            office_id=office_id or ALL,
            department_id=requested_department_id or ALL,
            can_write=can_write,
            assigned_to=assigned_to,
        )

    if requested_office_id and requested_office_id != own_office:
        raise _deny(user, "Office is outside your scope",
                    office_id=requested_office_id, department_id=requested_department_id)

    if role is Role.OFFICE_ADMIN:
        _check_directory(user, org_id, own_office, requested_department_id, directory)
        return Scope(
            org_id=org_id,
            office_id=own_office,
            department_id=requested_department_id or ALL,
            can_write=can_write,
            assigned_to=assigned_to,
        )

    if requested_department_id and requested_department_id != own_department:
        raise _deny(user, "Department is outside your scope",
                    office_id=requested_office_id, department_id=requested_department_id)
    return Scope(
        org_id=org_id,
        office_id=own_office,
        department_id=own_department,
        can_write=can_write,
        assigned_to=assigned_to,
    )


def scope_context(scope: Scope) -> str:
    """Navigation context implied by which scope ids are concrete."""
    if scope.department_id not in (None, ALL):
        return CONTEXT_DEPARTMENT
    if scope.office_id != ALL:
        return CONTEXT_OFFICE
    return CONTEXT_GLOBAL


def _job_in_scope(user, job, scope: Scope | None) -> bool:
    if _field(job, "org_id") != _field(user, "org_id"):
        return False
    if scope is None:
        scope = resolve_scope(user)
    elif scope.org_id != _field(user, "org_id"):
        return False
    return scope.covers(_field(job, "org_id"), _field(job, "office_id"), _field(job, "department_id"))


def can_read(user, job, scope: Scope | None = None) -> bool:
    """True when ``job`` is visible to ``user`` (optionally within ``scope``).

    Roles that cannot move jobs (MEMBER) only read jobs they are assigned to.
    """
    if not _job_in_scope(user, job, scope):
        return False
    if has_capability(_field(user, "role"), Capability.MOVE_JOBS):
        return True
    return _field(user, "id") in (_field(job, "assigned_user_ids") or ())


def can_write(user, job, scope: Scope | None = None) -> bool:
    """True when ``user`` may change the job's status or assignment.

    Same org, inside the user's scope, and a role that can move jobs
    (MEMBER is read-only for status/assignment).
    """
    if not has_capability(_field(user, "role"), Capability.MOVE_JOBS):
        return False
    return _job_in_scope(user, job, scope)


def apply_scope(query, model, scope: Scope):
    """Filter a SQLAlchemy query on ``model`` down to ``scope``."""
    query = query.filter(model.org_id == scope.org_id)
    if scope.office_id != ALL and hasattr(model, "office_id"):
        query = query.filter(model.office_id == scope.office_id)
    if scope.department_id not in (None, ALL) and hasattr(model, "department_id"):
        query = query.filter(model.department_id == scope.department_id)
    if scope.assigned_to is not None and hasattr(model, "assigned_user_ids"):
        # Matches the quoted id inside the serialized JSON list.
        query = query.filter(
            cast(model.assigned_user_ids, String).contains(json.dumps(scope.assigned_to), autoescape=True)
        )
    return query


def build_directory(org_id: str) -> OrgDirectory:
    """Load the office/department ownership index for one organization."""
    from app.models.org import Department, Office

    offices = {o.id: o.org_id for o in Office.query.filter_by(org_id=org_id).all()}
    departments = {
        d.id: (d.org_id, d.office_id)
        for d in Department.query.filter_by(org_id=org_id).all()
    }
    return OrgDirectory(offices=offices, departments=departments)

