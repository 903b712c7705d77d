"""
Tests for app/services/job_service.py

Scenarios covered:
  1. create_job: FNOL + empty assignment, hierarchy consistency validation
  2. list_jobs / get_job: scope filtering and tenant isolation
  3. apply_patch: merge-update, feed publication, rollback on commit failure
  4. move_job: scope check, drop-target resolution, no-op and terminal rules
  5. open_board_session: DB-backed session reconciles through the feed
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    NotFoundError,
    ScopeDeniedError,
    TerminalJobError,
    UnknownLaneError,
    ValidationError,
    WriteConflictError,
)
from app.models import db
from app.models.job import Job, JobStatus
from app.services import job_service
from app.services.board_controller import BoardState, DropOutcome
from app.services.lanes import Lane
from app.services.live_feed import feed
from app.services.scope_resolver import ALL, Scope, resolve_scope
from app.services.transition_engine import JobPatch

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


# ── 1. create_job ────────────────────────────────────────────────────────────


class TestCreateJob:
    def test_new_job_is_fnol_and_unassigned(self, org_tree):
        job = job_service.create_job("org1", "O1", "D1", {"customer_name": "Ada Lovelace"})
        assert job.status == JobStatus.FNOL
        assert job.assigned_user_ids == []
        assert job.customer_name == "Ada Lovelace"
        assert db.session.get(Job, job.id) is not None

    def test_publishes_to_feed(self, org_tree):
        seen = []
        feed.subscribe("jobs", seen.append, scope=Scope("org1", "O1", "D1"))
        job = job_service.create_job("org1", "O1", "D1")
        assert [r["id"] for r in seen] == [job.id]

    def test_department_must_belong_to_office(self, org_tree):
        with pytest.raises(ValidationError, match="does not belong"):
            job_service.create_job("org1", "O2", "D1")

    @pytest.mark.parametrize("office_id,department_id", [
        ("X1", "D1"), ("O1", "XD1"), ("nope", "D1"), ("O1", None),
    ])
    def test_foreign_or_missing_hierarchy_rejected(self, org_tree, office_id, department_id):
        with pytest.raises(ValidationError):
            job_service.create_job("org1", office_id, department_id)


# ── 2. Queries ───────────────────────────────────────────────────────────────


class TestQueries:
    def test_list_jobs_respects_scope(self, make_job):
        make_job("a", office_id="O1", department_id="D1")
        make_job("b", office_id="O1", department_id="D2")
        make_job("c", office_id="O2", department_id="D3", status=JobStatus.REVIEW)

        assert [j.id for j in job_service.list_jobs(Scope("org1", "O1", "D1"))] == ["a"]
        assert {j.id for j in job_service.list_jobs(Scope("org1", "O1", ALL))} == {"a", "b"}
        assert [j.id for j in job_service.list_jobs(Scope("org1", ALL, ALL), status="REVIEW")] == ["c"]

    def test_member_lists_only_assigned_jobs(self, org_tree, make_job):
        make_job("mine", status=JobStatus.MITIGATION, assigned=["u7"])
        make_job("colleague", status=JobStatus.MITIGATION, assigned=["u3"])
        make_job("new")
        scope = resolve_scope(org_tree["u7"])
        assert [j.id for j in job_service.list_jobs(scope)] == ["mine"]

    def test_list_jobs_rejects_unknown_status(self, make_job):
        with pytest.raises(ValidationError):
            job_service.list_jobs(Scope("org1", ALL, ALL), status="ARCHIVED")

    def test_get_job_is_tenant_scoped(self, make_job):
        make_job("x", org_id="org2", office_id="X1", department_id="XD1")
        assert job_service.get_job("x", org_id="org2").id == "x"
        with pytest.raises(NotFoundError):
            job_service.get_job("x", org_id="org1")


# ── 3. apply_patch ───────────────────────────────────────────────────────────


class TestApplyPatch:
    def test_writes_exactly_the_patch_fields(self, make_job):
        make_job("a")
        patch = JobPatch(status=JobStatus.MITIGATION, assigned_user_ids=("u3",), updated_at=NOW)

        job = job_service.apply_patch("a", patch, org_id="org1")

        db.session.expire_all()
        stored = db.session.get(Job, "a")
        assert stored.status == JobStatus.MITIGATION
        assert stored.assigned_user_ids == ["u3"]
        assert stored.updated_at_utc() == NOW
        assert stored.customer_name == "Customer a"
        assert job.id == "a"

    def test_empty_patch_changes_nothing(self, make_job):
        original = make_job("a").updated_at_utc()
        seen = []
        feed.subscribe("jobs", seen.append)
        job_service.apply_patch("a", JobPatch(), org_id="org1")
        assert seen == []
        assert db.session.get(Job, "a").updated_at_utc() == original

    def test_publishes_committed_record(self, make_job):
        make_job("a")
        seen = []
        feed.subscribe("jobs", seen.append)
        job_service.apply_patch("a", JobPatch(status=JobStatus.REVIEW, updated_at=NOW), org_id="org1")
        assert seen[-1]["status"] == "REVIEW"

    def test_commit_failure_rolls_back_and_raises_write_conflict(self, make_job, monkeypatch):
        make_job("a")
        seen = []
        feed.subscribe("jobs", seen.append)

        def _fail():
            raise OperationalError("UPDATE jobs", {}, Exception("database is locked"))

        monkeypatch.setattr(db.session, "commit", _fail)
        with pytest.raises(WriteConflictError) as exc_info:
            job_service.apply_patch("a", JobPatch(status=JobStatus.REVIEW, updated_at=NOW), org_id="org1")
        monkeypatch.undo()

        assert exc_info.value.job_id == "a"
        assert seen == []
        assert db.session.get(Job, "a").status == JobStatus.FNOL

    def test_cross_org_patch_is_not_found(self, make_job):
        make_job("a")
        with pytest.raises(NotFoundError):
            job_service.apply_patch("a", JobPatch(status=JobStatus.REVIEW), org_id="org2")


# ── 4. move_job ──────────────────────────────────────────────────────────────


class TestMoveJob:
    def test_auto_claim_by_manager(self, org_tree, make_job):
        make_job("a")
        result = job_service.move_job(org_tree["u3"], "a", "in_progress")
        assert result["changed"] is True
        assert result["previous_lane"] is Lane.UNASSIGNED
        assert result["lane"] is Lane.IN_PROGRESS
        assert result["job"].assigned_user_ids == ["u3"]
        assert result["job"].status == JobStatus.MITIGATION

    def test_drop_on_another_card(self, org_tree, make_job):
        make_job("a")
        make_job("b", status=JobStatus.REVIEW, assigned=["u3"])
        result = job_service.move_job(org_tree["u3"], "a", "b")
        assert result["lane"] is Lane.REVIEW

    def test_card_outside_scope_is_not_a_valid_target(self, org_tree, make_job):
        make_job("a")
        make_job("other", office_id="O2", department_id="D3", status=JobStatus.REVIEW)
        with pytest.raises(UnknownLaneError):
            job_service.move_job(org_tree["u3"], "a", "other")

    def test_same_lane_is_a_noop(self, org_tree, make_job):
        original = make_job("a", status=JobStatus.MITIGATION, assigned=["u3"]).updated_at_utc()
        result = job_service.move_job(org_tree["u3"], "a", "in_progress")
        assert result["changed"] is False
        assert result["patch"].is_empty
        assert db.session.get(Job, "a").updated_at_utc() == original

    def test_null_target_is_a_noop(self, org_tree, make_job):
        make_job("a")
        assert job_service.move_job(org_tree["u3"], "a", None)["changed"] is False

    def test_closeout_is_terminal(self, org_tree, make_job):
        make_job("a", status=JobStatus.CLOSEOUT)
        with pytest.raises(TerminalJobError):
            job_service.move_job(org_tree["u3"], "a", "review")

    def test_member_cannot_move(self, org_tree, make_job):
        make_job("a")
        with pytest.raises(ScopeDeniedError):
            job_service.move_job(org_tree["u7"], "a", "in_progress")

    def test_manager_of_other_office_cannot_move(self, org_tree, make_job):
        make_job("a")
        with pytest.raises(ScopeDeniedError):
            job_service.move_job(org_tree["u8"], "a", "review")

    def test_other_org_job_is_not_found(self, org_tree, make_job):
        make_job("x", org_id="org2", office_id="X1", department_id="XD1")
        with pytest.raises(NotFoundError):
            job_service.move_job(org_tree["owner"], "x", "review")

    def test_office_admin_requesting_foreign_office_is_denied(self, org_tree, make_job):
        make_job("a")
        with pytest.raises(ScopeDeniedError):
            job_service.move_job(org_tree["officeadmin"], "a", "review", requested_office_id="O2")


# ── 5. DB-backed board session ───────────────────────────────────────────────


class TestBoardSession:
    def test_session_writes_through_and_reconciles(self, org_tree, make_job):
        make_job("a")
        make_job("b", office_id="O1", department_id="D2")
        manager = org_tree["u3"]
        session = job_service.open_board_session(manager, resolve_scope(manager), clock=lambda: NOW)
        try:
            assert session.lane_ids()[Lane.UNASSIGNED] == ["a"]

            result = session.on_drop("a", "review")

            assert result.outcome is DropOutcome.OPTIMISTIC
            assert session.state is BoardState.IDLE
            assert db.session.get(Job, "a").status == JobStatus.REVIEW
        finally:
            session.close()
        assert feed.subscriber_count("jobs") == 0

    def test_other_sessions_see_the_move(self, org_tree, make_job):
        make_job("a")
        manager, admin = org_tree["u3"], org_tree["officeadmin"]
        mine = job_service.open_board_session(manager, resolve_scope(manager))
        theirs = job_service.open_board_session(admin, resolve_scope(admin))

        mine.on_drop("a", "in_progress")

        assert theirs.lane_of_job("a") is Lane.IN_PROGRESS
        assert theirs.job("a")["assigned_user_ids"] == ["u3"]
