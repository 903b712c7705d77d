"""
Jobs blueprint — restoration claim intake and lookup.

Endpoints:
    GET  /api/v1/jobs              — jobs in the caller's scope (paginated, ?status=)
    POST /api/v1/jobs              — open a new job (FNOL, nobody assigned)
    GET  /api/v1/jobs/<job_id>     — single job

Lane moves go through the board blueprint, not through these endpoints.
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from app.blueprints import current_user, paginate_query, requested_scope_ids
from app.core.exceptions import NotFoundError, ScopeDeniedError, ValidationError
from app.services import job_service
from app.services.lanes import lane_of
from app.services.scope_resolver import build_directory, can_read, resolve_scope
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/v1/jobs")


@jobs_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@jobs_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), status=422, details=error.details)


@jobs_bp.errorhandler(ScopeDeniedError)
def _handle_scope_denied(error: ScopeDeniedError):
    return api_error(E.SCOPE_DENIED, str(error))


@jobs_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in jobs_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _job_payload(job):
    data = job.to_dict()
    data["lane"] = lane_of(job).value
    return data


@jobs_bp.route("", methods=["GET"])
def list_jobs():
    """Jobs in scope. Query params: office_id, department_id, status, limit, offset."""
    user = current_user()
    if user is None:
        return api_error(E.UNAUTHENTICATED, "Authentication required")
    office_id, department_id = requested_scope_ids()
    scope = resolve_scope(user, office_id, department_id, directory=build_directory(user.org_id))
    items, total = paginate_query(job_service.jobs_query(scope, status=request.args.get("status")))
    return jsonify({"items": [_job_payload(j) for j in items], "total": total}), 200


@jobs_bp.route("", methods=["POST"])
def create_job():
    """Open a job in the given office/department.

    Body: {office_id, department_id, customer_name?, property_address?, carrier?}
    Returns: created job (201).
    """
    user = current_user()
    if user is None:
        return api_error(E.UNAUTHENTICATED, "Authentication required")
    data = request.get_json(silent=True) or {}

    office_id = data.get("office_id") or ""
    department_id = data.get("department_id") or ""
    if not isinstance(office_id, str) or not isinstance(department_id, str):
        return api_error(E.VALIDATION_INVALID, "office_id and department_id must be strings")
    office_id, department_id = office_id.strip(), department_id.strip()
    if not office_id or not department_id:
        return api_error(E.VALIDATION_REQUIRED, "office_id and department_id are required")
    for field, limit in (("customer_name", 200), ("property_address", 300), ("carrier", 120)):
        value = data.get(field) or ""
        if not isinstance(value, str):
            return api_error(E.VALIDATION_INVALID, f"{field} must be a string")
        if len(value) > limit:
            return api_error(E.VALIDATION_INVALID, f"{field} must be ≤ {limit} characters")

    directory = build_directory(user.org_id)
    scope = resolve_scope(user, office_id, department_id, directory=directory)
    if not scope.can_write:
        return api_error(E.FORBIDDEN, "Your role cannot open jobs")

    job = job_service.create_job(user.org_id, office_id, department_id, data)
    return jsonify(_job_payload(job)), 201


@jobs_bp.route("/<job_id>", methods=["GET"])
def get_job(job_id):
    """Single job. 404 for other orgs' jobs, 403 for jobs outside the caller's scope."""
    user = current_user()
    if user is None:
        return api_error(E.UNAUTHENTICATED, "Authentication required")
    job = job_service.get_job(job_id, org_id=user.org_id)
    if not can_read(user, job):
        raise ScopeDeniedError(
            f"Job {job_id} is outside your scope",
            user_id=user.id,
            requested_office_id=job.office_id,
            requested_department_id=job.department_id,
        )
    return jsonify(_job_payload(job)), 200
