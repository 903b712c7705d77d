"""
Restoration Ops Board
Blueprint registry and shared request helpers.
"""

from flask import g, request

from app.models.org import User
from app.services.helpers.scoped_queries import get_scoped_or_none


def current_user():
    """The acting User from the bearer token, or None when unauthenticated.

    The user is looked up inside the token's organization, so a token whose
    ``sub`` belongs to another org resolves to None.
    """
    user_id = getattr(g, "jwt_user_id", None)
    org_id = getattr(g, "jwt_org_id", None)
    if not user_id or not org_id:
        return None
    return get_scoped_or_none(User, user_id, org_id=org_id)


def requested_scope_ids():
    """(office_id, department_id) navigation context from the query string."""
    return (
        request.args.get("office_id") or None,
        request.args.get("department_id") or None,
    )


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total
