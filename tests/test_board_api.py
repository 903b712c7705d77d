"""
API tests for the board and jobs blueprints.

Endpoints:
    GET  /api/v1/scope, /api/v1/navigation, /api/v1/board
    POST /api/v1/board/jobs/<job_id>/move
    GET/POST /api/v1/jobs, GET /api/v1/jobs/<job_id>
    GET  /api/v1/health
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.models import db
from app.models.job import Job, JobStatus

BASE = "/api/v1"


# ── Authentication ───────────────────────────────────────────────────────────


class TestAuthentication:
    def test_missing_token_is_401(self, client, org_tree):
        res = client.get(f"{BASE}/board")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_bad_signature_is_401(self, client, org_tree):
        token = jwt.encode({"sub": "u3", "org_id": "org1", "type": "access"}, "wrong-secret", algorithm="HS256")
        res = client.get(f"{BASE}/board", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_expired_token_is_401(self, app, client, org_tree):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "u3", "org_id": "org1", "type": "access", "iat": past, "exp": past + timedelta(minutes=5)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        res = client.get(f"{BASE}/board", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_user_of_other_org_claim_is_401(self, app, client, org_tree):
        token = jwt.encode(
            {"sub": "u3", "org_id": "org2", "type": "access"},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        res = client.get(f"{BASE}/scope", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_health_needs_no_token(self, client):
        res = client.get(f"{BASE}/health")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"


# ── Scope ────────────────────────────────────────────────────────────────────


class TestScopeEndpoint:
    def test_office_admin_defaults_to_own_office(self, client, auth_headers):
        res = client.get(f"{BASE}/scope", headers=auth_headers("officeadmin"))
        assert res.status_code == 200
        scope = res.get_json()["scope"]
        assert scope["office_id"] == "O1"
        assert scope["department_id"] == "ALL"
        assert scope["context"] == "office"

    def test_office_admin_foreign_office_is_403(self, client, auth_headers):
        res = client.get(f"{BASE}/scope?office_id=O2", headers=auth_headers("officeadmin"))
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "ERR_SCOPE_DENIED"
        assert body["details"]["office_id"] == "O2"

    def test_owner_cannot_reach_other_org(self, client, auth_headers):
        res = client.get(f"{BASE}/scope?office_id=X1", headers=auth_headers("owner"))
        assert res.status_code == 403

    def test_member_scope_is_read_only(self, client, auth_headers):
        scope = client.get(f"{BASE}/scope", headers=auth_headers("u7")).get_json()["scope"]
        assert scope["can_write"] is False
        assert scope["assigned_to"] == "u7"
        assert (scope["office_id"], scope["department_id"]) == ("O1", "D1")


# ── Navigation ───────────────────────────────────────────────────────────────


class TestNavigationEndpoint:
    def test_member_gets_department_entries(self, client, auth_headers):
        res = client.get(f"{BASE}/navigation", headers=auth_headers("u7"))
        assert res.status_code == 200
        body = res.get_json()
        paths = {item["id"]: item["path"] for item in body["items"]}
        assert paths["dept-kanban"] == "/office/O1/department/D1/kanban"
        assert paths["member-jobs"] == "/jobs?scope=my"
        assert "dept-dispatch" not in paths
        assert [i["id"] for i in body["sections"]["utilities"]] == ["util-uploads", "util-help"]

    def test_owner_global_navigation(self, client, auth_headers):
        body = client.get(f"{BASE}/navigation", headers=auth_headers("owner")).get_json()
        ids = {item["id"] for item in body["items"]}
        assert "global-billing" in ids
        assert not any(i.startswith("dept-") for i in ids)


# ── Board ────────────────────────────────────────────────────────────────────


class TestBoardEndpoint:
    def test_lanes_in_order_with_scope_filter(self, client, auth_headers, make_job):
        make_job("a")
        make_job("b", status=JobStatus.MITIGATION, assigned=["u3"])
        make_job("c", status=JobStatus.REVIEW, assigned=["u3"])
        make_job("d", status=JobStatus.CLOSEOUT)
        make_job("elsewhere", office_id="O1", department_id="D2")

        res = client.get(f"{BASE}/board", headers=auth_headers("u3"))

        assert res.status_code == 200
        body = res.get_json()
        assert body["read_only"] is False
        assert [lane["id"] for lane in body["lanes"]] == ["unassigned", "in_progress", "review", "done"]
        assert [lane["title"] for lane in body["lanes"]][0] == "Unassigned / New"
        ids = {lane["id"]: [j["id"] for j in lane["jobs"]] for lane in body["lanes"]}
        assert ids == {"unassigned": ["a"], "in_progress": ["b"], "review": ["c"], "done": ["d"]}

    def test_stagnant_marker(self, client, auth_headers, make_job):
        make_job("old", days_ago=6)
        make_job("fresh", days_ago=1)
        make_job("closed", status=JobStatus.CLOSEOUT, days_ago=30)
        body = client.get(f"{BASE}/board", headers=auth_headers("u3")).get_json()
        cards = {j["id"]: j for lane in body["lanes"] for j in lane["jobs"]}
        assert cards["old"]["stagnant"] is True
        assert cards["old"]["days_in_stage"] == 6
        assert cards["fresh"]["stagnant"] is False
        assert cards["closed"]["stagnant"] is False

    def test_member_board_is_read_only(self, client, auth_headers, make_job):
        make_job("a", status=JobStatus.MITIGATION, assigned=["u7"])
        body = client.get(f"{BASE}/board", headers=auth_headers("u7")).get_json()
        assert body["read_only"] is True
        assert body["lanes"][1]["jobs"][0]["id"] == "a"

    def test_member_board_only_shows_assigned_jobs(self, client, auth_headers, make_job):
        make_job("mine", status=JobStatus.MITIGATION, assigned=["u7"])
        make_job("shared", status=JobStatus.REVIEW, assigned=["u3", "u7"])
        make_job("colleague", status=JobStatus.MITIGATION, assigned=["u3"])
        make_job("new")
        body = client.get(f"{BASE}/board", headers=auth_headers("u7")).get_json()
        ids = {j["id"] for lane in body["lanes"] for j in lane["jobs"]}
        assert ids == {"mine", "shared"}

    def test_office_admin_can_narrow_to_department(self, client, auth_headers, make_job):
        make_job("a", department_id="D1")
        make_job("b", department_id="D2")
        body = client.get(f"{BASE}/board?department_id=D2", headers=auth_headers("officeadmin")).get_json()
        assert [j["id"] for j in body["lanes"][0]["jobs"]] == ["b"]


# ── Move ─────────────────────────────────────────────────────────────────────


class TestMoveEndpoint:
    def _move(self, client, headers, job_id, target):
        return client.post(f"{BASE}/board/jobs/{job_id}/move", json={"target": target}, headers=headers)

    def test_auto_claim(self, client, auth_headers, make_job):
        make_job("a")
        res = self._move(client, auth_headers("u3"), "a", "in_progress")
        assert res.status_code == 200
        body = res.get_json()
        assert body["changed"] is True
        assert body["previous_lane"] == "unassigned"
        assert body["lane"] == "in_progress"
        assert body["patch"]["status"] == "MITIGATION"
        assert body["patch"]["assigned_user_ids"] == ["u3"]
        assert db.session.get(Job, "a").assigned_user_ids == ["u3"]

    def test_noop(self, client, auth_headers, make_job):
        make_job("a")
        body = self._move(client, auth_headers("u3"), "a", "unassigned").get_json()
        assert body["changed"] is False
        assert body["patch"] == {}

    def test_missing_target_is_400(self, client, auth_headers, make_job):
        make_job("a")
        res = client.post(f"{BASE}/board/jobs/a/move", json={}, headers=auth_headers("u3"))
        assert res.status_code == 400

    def test_terminal_is_422(self, client, auth_headers, make_job):
        make_job("a", status=JobStatus.CLOSEOUT)
        res = self._move(client, auth_headers("u3"), "a", "review")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_TERMINAL_JOB"

    def test_unknown_lane_is_422(self, client, auth_headers, make_job):
        make_job("a")
        res = self._move(client, auth_headers("u3"), "a", "archive")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_UNKNOWN_LANE"

    def test_member_is_403(self, client, auth_headers, make_job):
        make_job("a")
        res = self._move(client, auth_headers("u7"), "a", "review")
        assert res.status_code == 403
        assert db.session.get(Job, "a").status == JobStatus.FNOL

    def test_cross_org_is_404(self, client, auth_headers, make_job):
        make_job("x", org_id="org2", office_id="X1", department_id="XD1")
        res = self._move(client, auth_headers("owner"), "x", "review")
        assert res.status_code == 404

    def test_non_json_body_is_415(self, client, auth_headers, make_job):
        make_job("a")
        res = client.post(f"{BASE}/board/jobs/a/move", data="target=review",
                          content_type="text/plain", headers=auth_headers("u3"))
        assert res.status_code == 415


# ── Jobs ─────────────────────────────────────────────────────────────────────


class TestJobsEndpoints:
    def test_create_job(self, client, auth_headers):
        res = client.post(f"{BASE}/jobs", json={
            "office_id": "O1", "department_id": "D1", "customer_name": "Grace Hopper", "carrier": "Acme Mutual",
        }, headers=auth_headers("u3"))
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "FNOL"
        assert body["assigned_user_ids"] == []
        assert body["lane"] == "unassigned"

    def test_member_cannot_create(self, client, auth_headers):
        res = client.post(f"{BASE}/jobs", json={"office_id": "O1", "department_id": "D1"},
                          headers=auth_headers("u7"))
        assert res.status_code == 403

    def test_manager_cannot_create_outside_department(self, client, auth_headers):
        res = client.post(f"{BASE}/jobs", json={"office_id": "O1", "department_id": "D2"},
                          headers=auth_headers("u3"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_SCOPE_DENIED"

    def test_mismatched_hierarchy_is_rejected(self, client, auth_headers):
        res = client.post(f"{BASE}/jobs", json={"office_id": "O2", "department_id": "D1"},
                          headers=auth_headers("owner"))
        assert res.status_code == 403

    @pytest.mark.parametrize("payload", [{}, {"office_id": "O1"}, {"department_id": "D1"}])
    def test_required_fields(self, client, auth_headers, payload):
        res = client.post(f"{BASE}/jobs", json=payload, headers=auth_headers("owner"))
        assert res.status_code == 400

    @pytest.mark.parametrize("payload", [
        {"office_id": 5, "department_id": "D1"},
        {"office_id": "O1", "department_id": ["D1"]},
        {"office_id": "O1", "department_id": "D1", "customer_name": 42},
    ])
    def test_non_string_fields_are_400(self, client, auth_headers, payload):
        res = client.post(f"{BASE}/jobs", json=payload, headers=auth_headers("owner"))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_get_job(self, client, auth_headers, make_job):
        make_job("a", status=JobStatus.MITIGATION, assigned=["u7"])
        res = client.get(f"{BASE}/jobs/a", headers=auth_headers("u7"))
        assert res.status_code == 200
        assert res.get_json()["id"] == "a"

    def test_get_job_outside_scope_is_403(self, client, auth_headers, make_job):
        make_job("a", office_id="O2", department_id="D3")
        res = client.get(f"{BASE}/jobs/a", headers=auth_headers("u7"))
        assert res.status_code == 403

    def test_member_cannot_read_unassigned_job_in_own_department(self, client, auth_headers, make_job):
        make_job("a", status=JobStatus.MITIGATION, assigned=["u3"])
        res = client.get(f"{BASE}/jobs/a", headers=auth_headers("u7"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_SCOPE_DENIED"

    def test_member_list_only_contains_assigned_jobs(self, client, auth_headers, make_job):
        make_job("mine", status=JobStatus.MITIGATION, assigned=["u7"])
        make_job("colleague", status=JobStatus.MITIGATION, assigned=["u3"])
        make_job("new")
        body = client.get(f"{BASE}/jobs", headers=auth_headers("u7")).get_json()
        assert body["total"] == 1
        assert [j["id"] for j in body["items"]] == ["mine"]

    def test_get_job_other_org_is_404(self, client, auth_headers, make_job):
        make_job("x", org_id="org2", office_id="X1", department_id="XD1")
        res = client.get(f"{BASE}/jobs/x", headers=auth_headers("owner"))
        assert res.status_code == 404

    def test_list_jobs_paginated(self, client, auth_headers, make_job):
        for i in range(3):
            make_job(f"j{i}")
        make_job("other", office_id="O2", department_id="D3")
        res = client.get(f"{BASE}/jobs?limit=2", headers=auth_headers("officeadmin"))
        body = res.get_json()
        assert body["total"] == 3
        assert len(body["items"]) == 2

    def test_list_jobs_bad_status_is_422(self, client, auth_headers):
        res = client.get(f"{BASE}/jobs?status=ARCHIVED", headers=auth_headers("owner"))
        assert res.status_code == 422
