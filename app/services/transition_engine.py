"""
Workflow board — Transition Engine

Turns "move this job into that lane" into the minimal patch of job fields:
  - Transition validation (LANE_TRANSITIONS)
  - Scope check (authorize_transition, composed with the scope resolver)
  - Side effects (auto-claim on entering in_progress, clearing assignment
    on return to unassigned, updated_at stamp)

Side effects by target lane:
    unassigned   assigned_user_ids := []                 (status kept)
    in_progress  status := MITIGATION unless already in the field;
                 assigned_user_ids := [actor] if nobody is assigned
    review       status := REVIEW
    done         status := CLOSEOUT                      (assignment kept)

Dropping a card back on its own lane yields an empty patch and leaves
updated_at alone. CLOSEOUT jobs never leave ``done``.

The engine only computes. The caller writes the whole patch in one update;
applying part of it (status but not assignment) breaks the lane invariant.

Usage:
    from app.services.transition_engine import compute_transition

    patch = compute_transition(job, "in_progress", acting_user_id="u7")
    if not patch.is_empty:
        job_service.apply_patch(job.id, patch, org_id=job.org_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.exceptions import ScopeDeniedError, TerminalJobError, UnknownLaneError
from app.models.job import FIELD_STATUSES, TERMINAL_STATUSES, JobStatus
from app.services.lanes import Lane, job_status, lane_of, parse_lane
from app.services.scope_resolver import Scope, can_write

logger = logging.getLogger(__name__)


# Legal lane moves. ``done`` is terminal.
LANE_TRANSITIONS: dict[Lane, frozenset[Lane]] = {
    Lane.UNASSIGNED: frozenset({Lane.IN_PROGRESS, Lane.REVIEW, Lane.DONE}),
    Lane.IN_PROGRESS: frozenset({Lane.UNASSIGNED, Lane.REVIEW, Lane.DONE}),
    Lane.REVIEW: frozenset({Lane.UNASSIGNED, Lane.IN_PROGRESS, Lane.DONE}),
    Lane.DONE: frozenset(),
}

# Default status a job takes when it first enters the field.
DEFAULT_FIELD_STATUS = JobStatus.MITIGATION


@dataclass(frozen=True)
class JobPatch:
    """Minimal set of job field changes. ``None`` means "leave untouched"."""

    status: JobStatus | None = None
    assigned_user_ids: tuple[str, ...] | None = None
    updated_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and self.assigned_user_ids is None and self.updated_at is None

    def to_dict(self) -> dict:
        """Only the fields this patch sets, JSON-ready."""
        data: dict = {}
        if self.status is not None:
            data["status"] = self.status.value
        if self.assigned_user_ids is not None:
            data["assigned_user_ids"] = list(self.assigned_user_ids)
        if self.updated_at is not None:
            data["updated_at"] = self.updated_at.isoformat()
        return data

    def apply_to(self, job):
        """Write every set field onto ``job`` (model or dict) and return it.

        Dict records receive the JSON form (``to_dict``), models the typed values.
        """
        if isinstance(job, dict):
            job.update(self.to_dict())
            return job
        values = {}
        if self.status is not None:
            values["status"] = self.status
        if self.assigned_user_ids is not None:
            values["assigned_user_ids"] = list(self.assigned_user_ids)
        if self.updated_at is not None:
            values["updated_at"] = self.updated_at
        for name, value in values.items():
            setattr(job, name, value)
        return job


EMPTY_PATCH = JobPatch()


def _field(job, name):
    if isinstance(job, dict):
        return job.get(name)
    return getattr(job, name, None)


def is_legal_move(current: Lane, target: Lane) -> bool:
    return current == target or target in LANE_TRANSITIONS[current]


def compute_transition(job, target_lane, acting_user_id: str, *, now: datetime | None = None) -> JobPatch:
    """
    Compute the patch that moves ``job`` into ``target_lane``.

    Args:
        job: Job model, dict, or object with status/assigned_user_ids.
        target_lane: Lane or lane id string.
        acting_user_id: User performing the drop (auto-claim target).
        now: Timestamp for updated_at (defaults to current UTC time).

    Returns:
        JobPatch — EMPTY_PATCH when the job is already in ``target_lane``.

    Raises:
        UnknownLaneError, TerminalJobError
    """
    target = parse_lane(target_lane)
    if target is None:
        raise UnknownLaneError(target_lane)

    current = lane_of(job)
    if current == target:
        return EMPTY_PATCH

    status = job_status(job)
    if status in TERMINAL_STATUSES or not is_legal_move(current, target):
        raise TerminalJobError(_field(job, "id"), target.value)

    new_status = None
    new_assignees = None
    assigned = tuple(_field(job, "assigned_user_ids") or ())

    if target is Lane.UNASSIGNED:
        new_assignees = ()
    elif target is Lane.IN_PROGRESS:
        if status not in FIELD_STATUSES:
            new_status = DEFAULT_FIELD_STATUS
        if not assigned:
            new_assignees = (acting_user_id,)
    elif target is Lane.REVIEW:
        new_status = JobStatus.REVIEW
    elif target is Lane.DONE:
        new_status = JobStatus.CLOSEOUT

    patch = JobPatch(
        status=new_status,
        assigned_user_ids=new_assignees,
        updated_at=now or datetime.now(timezone.utc),
    )
    logger.debug(
        "transition job_id=%s %s -> %s by %s patch=%s",
        _field(job, "id"), current.value, target.value, acting_user_id, patch.to_dict(),
    )
    return patch


def authorize_transition(user, job, scope: Scope | None = None) -> None:
    """Raise ScopeDeniedError unless ``user`` may move ``job``."""
    if not can_write(user, job, scope):
        raise ScopeDeniedError(
            f"Job {_field(job, 'id')} is outside your writable scope",
            user_id=_field(user, "id"),
            requested_office_id=_field(job, "office_id"),
            requested_department_id=_field(job, "department_id"),
        )


def resolve_drop_target(target_id, jobs) -> Lane | None:
    """
    Map a drop target to a lane.

    A lane id maps to that lane; a job id (card dropped on a card) maps to the
    lane that job currently sits in. Anything else returns None. The board
    treats a ``None`` target (released outside every drop zone) as a cancel
    and any other unresolved id as an unknown lane.
    """
    if target_id is None:
        return None
    lane = parse_lane(target_id)
    if lane is not None:
        return lane
    for other in jobs:
        if _field(other, "id") == target_id:
            return lane_of(other)
    return None
