"""
Workflow board blueprint.

Endpoints:
    GET  /api/v1/scope                       — resolved scope for the navigation context
    GET  /api/v1/navigation                  — navigation entries, grouped by section
    GET  /api/v1/board                       — lanes with jobs, read_only flag, stagnant markers
    POST /api/v1/board/jobs/<job_id>/move    — drop a card on a lane (or on another card)

Every endpoint takes the optional navigation context as query params
(office_id, department_id). A context outside the caller's hierarchy is
answered with 403, never with a narrower view.
Service layer owns all business logic and commits.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from app.blueprints import current_user, requested_scope_ids
from app.core.exceptions import (
    NotFoundError,
    ScopeDeniedError,
    TerminalJobError,
    UnknownLaneError,
    ValidationError,
    WriteConflictError,
)
from app.services import job_service
from app.services.lanes import LANES, days_in_stage, group_by_lane, is_stagnant
from app.services.navigation import NAV_CATALOG, filter_navigation, group_navigation
from app.services.scope_resolver import build_directory, resolve_scope
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

board_bp = Blueprint("board", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@board_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@board_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), status=422, details=error.details)


@board_bp.errorhandler(ScopeDeniedError)
def _handle_scope_denied(error: ScopeDeniedError):
    return api_error(E.SCOPE_DENIED, str(error), details={
        "office_id": error.requested_office_id,
        "department_id": error.requested_department_id,
    })


@board_bp.errorhandler(TerminalJobError)
def _handle_terminal(error: TerminalJobError):
    return api_error(E.TERMINAL_JOB, str(error), details={"job_id": error.job_id})


@board_bp.errorhandler(UnknownLaneError)
def _handle_unknown_lane(error: UnknownLaneError):
    return api_error(E.UNKNOWN_LANE, str(error), details={"target": error.target})


@board_bp.errorhandler(WriteConflictError)
def _handle_write_conflict(error: WriteConflictError):
    return api_error(E.WRITE_CONFLICT, "The move could not be saved, please retry",
                     details={"job_id": error.job_id})


@board_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in board_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _user_and_scope():
    """Return (user, scope, None) or (None, None, error_response)."""
    user = current_user()
    if user is None:
        return None, None, api_error(E.UNAUTHENTICATED, "Authentication required")
    office_id, department_id = requested_scope_ids()
    scope = resolve_scope(user, office_id, department_id, directory=build_directory(user.org_id))
    return user, scope, None


def _board_card(job, now, threshold):
    card = job.to_dict()
    card["days_in_stage"] = days_in_stage(card, now)
    card["stagnant"] = is_stagnant(card, now, threshold)
    return card


# ═════════════════════════════════════════════════════════════════════════
# Scope & navigation
# ═════════════════════════════════════════════════════════════════════════


@board_bp.route("/scope", methods=["GET"])
def get_scope():
    """Resolved scope for the caller and the requested navigation context."""
    user, scope, err = _user_and_scope()
    if err:
        return err
    return jsonify({"user": user.to_dict(), "scope": scope.to_dict()}), 200


@board_bp.route("/navigation", methods=["GET"])
def get_navigation():
    """Navigation entries the caller may open in the current context.

    Returns: {"scope", "items": [...], "sections": {section: [...]}}
    """
    user, scope, err = _user_and_scope()
    if err:
        return err
    entries = filter_navigation(NAV_CATALOG, user.role, scope, user=user)
    return jsonify({
        "scope": scope.to_dict(),
        "items": [e.to_dict() for e in entries],
        "sections": {
            section: [e.to_dict() for e in items]
            for section, items in group_navigation(entries).items()
        },
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Board
# ═════════════════════════════════════════════════════════════════════════


@board_bp.route("/board", methods=["GET"])
def get_board():
    """Jobs in scope grouped into the four lanes, in board order."""
    user, scope, err = _user_and_scope()
    if err:
        return err

    now = datetime.now(timezone.utc)
    threshold = current_app.config.get("STAGNANT_AFTER_DAYS", 5)
    groups = group_by_lane(job_service.list_jobs(scope))
    lanes = [
        {
            "id": info.id.value,
            "title": info.title,
            "jobs": [_board_card(job, now, threshold) for job in groups[info.id]],
        }
        for info in LANES
    ]
    return jsonify({
        "scope": scope.to_dict(),
        "read_only": not scope.can_write,
        "lanes": lanes,
    }), 200


@board_bp.route("/board/jobs/<job_id>/move", methods=["POST"])
def move_job(job_id):
    """Drop a job card.

    Body: {"target": <lane id | job id | null>}
          null means the card was released outside every lane (no change).
    Returns: {"changed", "patch", "previous_lane", "lane", "job"}
    """
    user = current_user()
    if user is None:
        return api_error(E.UNAUTHENTICATED, "Authentication required")
    data = request.get_json(silent=True) or {}
    if "target" not in data:
        return api_error(E.VALIDATION_REQUIRED, "target is required")

    office_id, department_id = requested_scope_ids()
    result = job_service.move_job(
        user,
        job_id,
        data["target"],
        requested_office_id=office_id,
        requested_department_id=department_id,
    )
    return jsonify({
        "changed": result["changed"],
        "patch": result["patch"].to_dict(),
        "previous_lane": result["previous_lane"].value,
        "lane": result["lane"].value,
        "job": result["job"].to_dict(),
    }), 200
