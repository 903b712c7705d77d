"""Job service layer — job persistence and the board move use case.

Transaction policy: every write commits itself and publishes the committed
record to the live feed. A failed commit rolls back and raises
WriteConflictError; nothing is published for it.

Operations:
- Job creation (FNOL, empty assignment, department/office consistency)
- Scoped listing and lookup
- apply_patch: merge-update of exactly the patch fields, all or nothing
- move_job: scope check + drop-target resolution + transition + write
- open_board_session: BoardSession wired to the DB writer and the feed
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ValidationError, WriteConflictError
from app.models import db
from app.models.job import Job, JobStatus
from app.models.org import Department, Office
from app.services.board_controller import BoardSession
from app.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from app.services.lanes import lane_of
from app.services.live_feed import feed as default_feed
from app.services.scope_resolver import Scope, apply_scope, build_directory, resolve_scope
from app.services.transition_engine import (
    JobPatch,
    authorize_transition,
    compute_transition,
    resolve_drop_target,
)

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("customer_name", "property_address", "carrier")


def _publish(job: Job, live_feed=None) -> None:
    (live_feed or default_feed).publish("jobs", job.to_dict())


def create_job(org_id, office_id, department_id, data=None, *, live_feed=None):
    """Create a job in FNOL with nobody assigned.

    Raises:
        ValidationError: the office or department is not part of the org, or
                         the department belongs to a different office.
    """
    data = data or {}
    office = get_scoped_or_none(Office, office_id, org_id=org_id) if office_id else None
    if office is None:
        raise ValidationError("office_id is not an office of this organization",
                              details={"office_id": office_id})
    department = get_scoped_or_none(Department, department_id, org_id=org_id) if department_id else None
    if department is None:
        raise ValidationError("department_id is not a department of this organization",
                              details={"department_id": department_id})
    if department.office_id != office.id:
        raise ValidationError("department does not belong to the job's office",
                              details={"department_id": department_id, "office_id": office_id})

    job = Job(
        org_id=org_id,
        office_id=office.id,
        department_id=department.id,
        status=JobStatus.FNOL,
        assigned_user_ids=[],
        **{f: (data.get(f) or "") for f in _EDITABLE_FIELDS},
    )
    db.session.add(job)
    try:
        db.session.commit()
    except SQLAlchemyError:
        logger.exception("Database commit failed creating job org_id=%s", org_id)
        db.session.rollback()
        raise
    logger.info("job created id=%s org_id=%s office_id=%s department_id=%s",
                job.id, org_id, office.id, department.id)
    _publish(job, live_feed)
    return job


def get_job(job_id, *, org_id):
    """Return the job, or raise NotFoundError (also for other orgs' jobs)."""
    return get_scoped(Job, job_id, org_id=org_id)


def jobs_query(scope: Scope, *, status=None):
    """Query of the jobs visible in ``scope``, oldest first.

    Raises:
        ValidationError: ``status`` is not a job status.
    """
    q = apply_scope(Job.query, Job, scope)
    if status:
        try:
            status = JobStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown job status: {status}", details={"status": status}) from None
        q = q.filter(Job.status == status)
    return q.order_by(Job.created_at, Job.id)


def list_jobs(scope: Scope, *, status=None):
    """Jobs visible in ``scope``, oldest first."""
    return jobs_query(scope, status=status).all()


def apply_patch(job_id, patch: JobPatch, *, org_id, live_feed=None):
    """Merge-update the job with every field of ``patch`` in one commit.

    Returns:
        The updated Job (unchanged when the patch is empty).

    Raises:
        NotFoundError: the job is not in ``org_id``.
        WriteConflictError: the commit failed; the session is rolled back.
    """
    job = get_scoped(Job, job_id, org_id=org_id)
    if patch.is_empty:
        return job

    patch.apply_to(job)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("job patch rejected job_id=%s patch=%s: %s", job_id, patch.to_dict(), exc)
        raise WriteConflictError(job_id, reason=exc.__class__.__name__) from exc

    logger.info("job patched id=%s fields=%s", job_id, sorted(patch.to_dict()))
    _publish(job, live_feed)
    return job


def board_writer(org_id, *, live_feed=None):
    """Writer callable for BoardSession bound to one organization."""

    def _write(job_id, patch):
        apply_patch(job_id, patch, org_id=org_id, live_feed=live_feed)

    return _write


def move_job(user, job_id, target, *, requested_office_id=None, requested_department_id=None,
             live_feed=None):
    """
    Move a job to the lane named by ``target`` (lane id or another job's id).

    Returns:
        {"job", "patch", "previous_lane", "lane", "changed"}

    Raises:
        ScopeDeniedError, TerminalJobError, UnknownLaneError,
        NotFoundError, WriteConflictError
    """
    scope = resolve_scope(
        user,
        requested_office_id,
        requested_department_id,
        directory=build_directory(user.org_id),
    )
    job = get_scoped(Job, job_id, org_id=user.org_id)
    authorize_transition(user, job, scope)

    previous_lane = lane_of(job)
    if target is None:
        target_lane = previous_lane
    else:
        siblings = [job]
        if isinstance(target, str) and target != job_id:
            other = get_scoped_or_none(Job, target, org_id=user.org_id)
            if other is not None and scope.admits(other):
                siblings.append(other)
        target_lane = resolve_drop_target(target, siblings) or target

    patch = compute_transition(job, target_lane, user.id)
    job = apply_patch(job.id, patch, org_id=user.org_id, live_feed=live_feed)
    return {
        "job": job,
        "patch": patch,
        "previous_lane": previous_lane,
        "lane": lane_of(job),
        "changed": not patch.is_empty,
    }


def open_board_session(user, scope: Scope, *, live_feed=None, clock=None):
    """BoardSession over the jobs in ``scope``, writing through apply_patch."""
    live_feed = live_feed or default_feed
    kwargs = {"clock": clock} if clock is not None else {}
    return BoardSession(
        user,
        scope,
        list_jobs(scope),
        board_writer(scope.org_id, live_feed=live_feed),
        feed=live_feed,
        **kwargs,
    )
