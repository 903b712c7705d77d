"""
Workflow board lanes — pure mapping from job state to one of four lanes.

The lane is never stored. It is recomputed from ``status`` and the number of
assigned users every time a job is rendered, so it can never drift from the
persisted status.

Rule order matters:

    1. CLOSEOUT                                   → done
    2. REVIEW                                     → review
    3. assigned AND status ∈ {MITIGATION, RECON}  → in_progress
    4. anything else                              → unassigned

A job in REVIEW that still has assignees shows in ``review``, never in
``in_progress``.

Usage:
    from app.services.lanes import Lane, lane_of, group_by_lane

    lane = lane_of(job)              # Job model, dict, or any object with
                                     # .status and .assigned_user_ids
    groups = group_by_lane(jobs)     # {Lane.UNASSIGNED: [...], ...}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from app.models.job import FIELD_STATUSES, TERMINAL_STATUSES, JobStatus


class Lane(str, Enum):
    UNASSIGNED = "unassigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


@dataclass(frozen=True)
class LaneInfo:
    id: Lane
    title: str


# Board column order, left to right.
LANES: tuple[LaneInfo, ...] = (
    LaneInfo(Lane.UNASSIGNED, "Unassigned / New"),
    LaneInfo(Lane.IN_PROGRESS, "Field Operations"),
    LaneInfo(Lane.REVIEW, "Manager Review"),
    LaneInfo(Lane.DONE, "Ready for Billing"),
)

LANE_IDS = frozenset(lane.value for lane in Lane)

STAGNANT_AFTER_DAYS = 5


def _field(job, name: str):
    if isinstance(job, dict):
        return job.get(name)
    return getattr(job, name, None)


def job_status(job) -> JobStatus:
    """Return the job's status as a JobStatus.

    Raises:
        ValueError: the status is missing or not a known JobStatus.
    """
    raw = _field(job, "status")
    try:
        return JobStatus(raw)
    except ValueError:
        raise ValueError(f"Unknown job status: {raw!r}") from None


def assignee_count(job) -> int:
    return len(_field(job, "assigned_user_ids") or ())


def lane_of(job) -> Lane:
    """Map a job to exactly one lane (see module docstring for the rules)."""
    status = job_status(job)
    if status is JobStatus.CLOSEOUT:
        return Lane.DONE
    if status is JobStatus.REVIEW:
        return Lane.REVIEW
    if assignee_count(job) > 0 and status in FIELD_STATUSES:
        return Lane.IN_PROGRESS
    return Lane.UNASSIGNED


def parse_lane(value) -> Lane | None:
    """Return the Lane for ``value`` or None when it is not a lane id."""
    if isinstance(value, Lane):
        return value
    if isinstance(value, str) and value in LANE_IDS:
        return Lane(value)
    return None


def group_by_lane(jobs) -> dict[Lane, list]:
    """Bucket jobs by lane, preserving input order inside each lane."""
    groups: dict[Lane, list] = {info.id: [] for info in LANES}
    for job in jobs:
        groups[lane_of(job)].append(job)
    return groups


def days_in_stage(job, now: datetime | None = None) -> int:
    """Whole days since the job's last board move (0 when unknown)."""
    updated_at = _field(job, "updated_at")
    if updated_at is None:
        return 0
    if isinstance(updated_at, str):
        updated_at = datetime.fromisoformat(updated_at)
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((now - updated_at).days, 0)


def is_stagnant(job, now: datetime | None = None, threshold_days: int = STAGNANT_AFTER_DAYS) -> bool:
    """True when an open job has sat in its stage longer than ``threshold_days``."""
    if job_status(job) in TERMINAL_STATUSES:
        return False
    return days_in_stage(job, now) > threshold_days
