"""
Workflow board — Board Session

Explicit finite state machine for one user's board session:

    IDLE ──drag_start──▶ DRAGGING ──drop──▶ RECONCILING ──feed update──▶ IDLE
                            │                    │
                            └──invalid / no-op───┴──write failed──▶ IDLE (reverted)
    any ──close──▶ CLOSED

  - drag_start snapshots the rendered records for rollback.
  - drop runs the transition engine. Errors revert to the snapshot before
    anything is rendered; a patch is rendered optimistically and handed to
    the writer.
  - The live feed is authoritative: whatever record it delivers replaces the
    local one, even when it contradicts the optimistic placement (last
    confirmed write wins, no merge).
  - close() detaches the feed listener. Updates after close are ignored; a
    write already handed to the writer is not cancelled.

Errors from the engine, the scope check and the writer are turned into
transient notices; none of them escape the session.

Usage:
    session = BoardSession(user, scope, jobs, writer=job_service.board_writer(org_id), feed=feed)
    session.on_drag_start(job_id)
    result = session.on_drop(job_id, "review")
    ...
    session.close()
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from app.core.exceptions import BoardError
from app.core.roles import Capability, has_capability
from app.services.lanes import LANES, Lane, lane_of
from app.services.scope_resolver import Scope
from app.services.transition_engine import (
    JobPatch,
    authorize_transition,
    compute_transition,
    resolve_drop_target,
)

logger = logging.getLogger(__name__)

MAX_NOTICES = 20


class BoardState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RECONCILING = "reconciling"
    CLOSED = "closed"


class DropOutcome(str, Enum):
    NOOP = "noop"
    REJECTED = "rejected"
    OPTIMISTIC = "optimistic"
    REVERTED = "reverted"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Notice:
    """Transient user-visible message."""

    code: str
    message: str
    job_id: Optional[str] = None


@dataclass(frozen=True)
class DropResult:
    outcome: DropOutcome
    patch: Optional[JobPatch] = None
    target_lane: Optional[Lane] = None
    error: Optional[Exception] = None


def _as_record(job) -> dict:
    if isinstance(job, dict):
        return copy.deepcopy(job)
    return job.to_dict()


def _utcnow():
    return datetime.now(timezone.utc)


class BoardSession:
    """One board view: records grouped by lane, with drag/drop and reconciliation."""

    def __init__(
        self,
        user,
        scope: Scope,
        jobs,
        writer: Callable[[str, JobPatch], None],
        *,
        feed=None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.user = user
        self.scope = scope
        self._writer = writer
        self._clock = clock
        self.state = BoardState.IDLE
        self.notices: list[Notice] = []

        # Rendered records (optimistic) keyed by id, in feed/insertion order.
        self._records: dict[str, dict] = {}
        for job in jobs:
            record = _as_record(job)
            if scope.admits(record):
                self._records[record["id"]] = record

        self._snapshot: Optional[dict[str, dict]] = None
        self._dragging: Optional[str] = None
        # job_id → lane the card was optimistically placed in
        self._pending: dict[str, Lane] = {}

        self._unsubscribe = None
        if feed is not None:
            self._unsubscribe = feed.subscribe(
                "jobs", self.on_external_update, scope=scope, visible_ids=list(self._records),
            )

    # ── Read side ───────────────────────────────────────────────────────

    @property
    def read_only(self) -> bool:
        role = self.user.get("role") if isinstance(self.user, dict) else self.user.role
        return not has_capability(role, Capability.MOVE_JOBS)

    @property
    def pending(self) -> dict[str, Lane]:
        return dict(self._pending)

    def job(self, job_id: str) -> Optional[dict]:
        record = self._records.get(job_id)
        return copy.deepcopy(record) if record is not None else None

    def lane_of_job(self, job_id: str) -> Optional[Lane]:
        record = self._records.get(job_id)
        return lane_of(record) if record is not None else None

    def lanes(self) -> dict[Lane, list[dict]]:
        """Current rendered view, grouped by lane in board order."""
        groups: dict[Lane, list[dict]] = {info.id: [] for info in LANES}
        for record in self._records.values():
            groups[lane_of(record)].append(copy.deepcopy(record))
        return groups

    def lane_ids(self) -> dict[Lane, list[str]]:
        return {lane: [r["id"] for r in records] for lane, records in self.lanes().items()}

    # ── Events ──────────────────────────────────────────────────────────

    def on_drag_start(self, job_id: str) -> bool:
        """Grab a card. Returns False when the grab is ignored."""
        if self.state is BoardState.CLOSED:
            return False
        if job_id not in self._records:
            logger.debug("drag_start ignored: job %s not on board", job_id)
            return False
        self._snapshot = copy.deepcopy(self._records)
        self._dragging = job_id
        self.state = BoardState.DRAGGING
        return True

    def on_drop(self, job_id: str, target) -> DropResult:
        """Release a card over ``target`` (lane id, job id, or None for no target)."""
        if self.state is BoardState.CLOSED:
            return DropResult(DropOutcome.IGNORED)
        if self._dragging != job_id and not self.on_drag_start(job_id):
            return DropResult(DropOutcome.IGNORED)

        record = self._records[job_id]
        if target is None:
            return self._finish(DropResult(DropOutcome.NOOP))
        target_lane = resolve_drop_target(target, self._records.values())

        try:
            authorize_transition(self.user, record, self.scope)
            patch = compute_transition(
                record,
                target_lane if target_lane is not None else target,
                self._user_id(),
                now=self._clock(),
            )
        except BoardError as exc:
            self._revert()
            self._notify(exc, job_id)
            return self._finish(DropResult(DropOutcome.REJECTED, target_lane=target_lane, error=exc))

        if patch.is_empty:
            return self._finish(DropResult(DropOutcome.NOOP, patch=patch, target_lane=target_lane))

        patch.apply_to(record)
        # Status is kept on a move to "unassigned", so a REVIEW job stays in review.
        self._pending[job_id] = lane_of(record)
        self._dragging = None
        self.state = BoardState.RECONCILING
        logger.info("board optimistic move job_id=%s lane=%s user_id=%s", job_id, target_lane.value, self._user_id())

        try:
            self._writer(job_id, patch)
        except Exception as exc:
            if isinstance(exc, BoardError):
                logger.warning("board write rejected job_id=%s: %s", job_id, exc)
            else:
                logger.exception("board write failed job_id=%s", job_id)
            self._pending.pop(job_id, None)
            self._revert()
            self._notify(exc, job_id)
            return self._finish(DropResult(DropOutcome.REVERTED, patch=patch, target_lane=target_lane, error=exc))

        self._snapshot = None
        if not self._pending and self.state is not BoardState.CLOSED:
            self.state = BoardState.IDLE
        return DropResult(DropOutcome.OPTIMISTIC, patch=patch, target_lane=target_lane)

    def on_external_update(self, record: dict) -> None:
        """Authoritative record from the live feed; always replaces the local copy."""
        if self.state is BoardState.CLOSED:
            return
        job_id = record["id"]
        if not self.scope.admits(record):
            # No longer visible here, e.g. a member was unassigned.
            self._records.pop(job_id, None)
            if self._snapshot is not None:
                self._snapshot.pop(job_id, None)
            self._pending.pop(job_id, None)
            if self._dragging == job_id:
                self._dragging = None
                self._snapshot = None
                self.state = BoardState.IDLE
            if self.state is BoardState.RECONCILING and not self._pending:
                self.state = BoardState.IDLE
            return
        authoritative = copy.deepcopy(record)
        self._records[job_id] = authoritative
        if self._snapshot is not None:
            self._snapshot[job_id] = copy.deepcopy(authoritative)

        expected = self._pending.pop(job_id, None)
        if expected is not None:
            actual = lane_of(authoritative)
            if actual != expected:
                logger.info(
                    "board optimistic placement discarded job_id=%s expected=%s actual=%s",
                    job_id, expected.value, actual.value,
                )
                self.notices.append(Notice(
                    code="ERR_CONCURRENT_UPDATE",
                    message=f"Job {job_id} was moved by someone else",
                    job_id=job_id,
                ))
                self._trim_notices()

        if self.state is BoardState.RECONCILING and not self._pending:
            self.state = BoardState.IDLE

    def close(self) -> None:
        """Tear the session down and detach from the feed."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._pending.clear()
        self._snapshot = None
        self._dragging = None
        self.state = BoardState.CLOSED

    def dismiss_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # ── Internals ───────────────────────────────────────────────────────

    def _user_id(self) -> str:
        return self.user.get("id") if isinstance(self.user, dict) else self.user.id

    def _revert(self) -> None:
        if self._snapshot is not None:
            self._records = self._snapshot
        self._snapshot = None

    def _finish(self, result: DropResult) -> DropResult:
        self._snapshot = None
        self._dragging = None
        self.state = BoardState.RECONCILING if self._pending else BoardState.IDLE
        return result

    def _notify(self, exc: Exception, job_id: str) -> None:
        code = getattr(exc, "code", None) or "ERR_INTERNAL"
        message = str(exc) if isinstance(exc, BoardError) else "Could not save the move, please retry"
        self.notices.append(Notice(code=code, message=message, job_id=job_id))
        self._trim_notices()

    def _trim_notices(self) -> None:
        if len(self.notices) > MAX_NOTICES:
            del self.notices[: len(self.notices) - MAX_NOTICES]
