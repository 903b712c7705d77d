"""
Org-scoped query helpers.

Every get-by-id in the platform MUST use these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls bypass
org isolation, which is the primary security boundary between tenants.

Usage:
    # Scope by org_id (every hierarchy model and Job has it)
    job = get_scoped(Job, job_id, org_id=user.org_id)

    # Narrower scopes stack
    dept = get_scoped(Department, dept_id, org_id=org_id, office_id=office_id)

    # When None is an acceptable outcome
    office = get_scoped_or_none(Office, office_id, org_id=org_id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model.
    A scope kwarg naming a column the model lacks raises ValueError at call
    time so the bug surfaces in tests rather than as an unscoped read.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db

logger = logging.getLogger(__name__)

# Supported scope keyword → expected model column name.
_SCOPE_KWARGS = ("org_id", "office_id", "department_id")


def get_scoped(
    model,
    pk: str,
    *,
    org_id: str | None = None,
    office_id: str | None = None,
    department_id: str | None = None,
):
    """Fetch a single entity by PK with mandatory scope filter.

    Cross-org access is indistinguishable from a missing record: both raise
    NotFoundError → HTTP 404.

    Args:
        model: SQLAlchemy model class with an ``id`` PK column.
        pk: Primary key value to look up.
        org_id: Scope by org_id column.
        office_id: Scope by office_id column.
        department_id: Scope by department_id column.

    Raises:
        ValueError: no scope given, or a given scope column does not exist.
        NotFoundError: missing, or outside the given scope.
    """
    provided_scopes = {
        "org_id": org_id,
        "office_id": office_id,
        "department_id": department_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            f"({', '.join(_SCOPE_KWARGS)}). Unscoped lookups are forbidden."
        )

    missing_fields = sorted(f for f in provided_scopes if not hasattr(model, f))
    if missing_fields:
        raise ValueError(
            f"{model.__name__} id={pk}: scope field(s) {missing_fields} are not "
            f"columns on {model.__name__}. Refusing to perform a partially scoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found in scope %s",
            model.__name__,
            pk,
            provided_scopes,
        )
        raise NotFoundError(resource=model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(
    model,
    pk: str,
    *,
    org_id: str | None = None,
    office_id: str | None = None,
    department_id: str | None = None,
):
    """Same as get_scoped but returns None instead of raising NotFoundError.

    Still raises ValueError for unscoped lookups.
    """
    try:
        return get_scoped(
            model,
            pk,
            org_id=org_id,
            office_id=office_id,
            department_id=department_id,
        )
    except NotFoundError:
        return None
