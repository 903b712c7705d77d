"""
Shared pytest fixtures for the Restoration Ops Board test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org_tree: Two organizations with offices, departments and one user per role
    - auth_headers: Bearer header factory for a user id
    - make_job: ORM job factory (bypasses the API to set arbitrary states)

Hierarchy created by org_tree (ids are fixed so assertions read naturally):

    org1
      O1 ── D1, D2
      O2 ── D3
      users: owner, orgadmin, officeadmin (O1), u3 manager (O1/D1),
             u7 member (O1/D1), u8 manager (O2/D3)
    org2
      X1 ── XD1
      users: x-manager (X1/XD1)
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.core.roles import Role
from app.models import db as _db
from app.models.job import Job, JobStatus
from app.models.org import Department, Office, Organization, User
from app.services.jwt_service import generate_access_token
from app.services.live_feed import feed


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        feed.clear()
        yield
        feed.clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Hierarchy fixtures ───────────────────────────────────────────────────


def _user(user_id, org_id, role, office_id=None, department_id=None):
    return User(
        id=user_id,
        org_id=org_id,
        role=role,
        office_id=office_id,
        department_id=department_id,
        display_name=user_id,
        email=f"{user_id}@{org_id}.example",
    )


@pytest.fixture()
def org_tree():
    """Create the two-organization hierarchy described in the module docstring.

    Returns a dict of the created records keyed by id.
    """
    records = [
        Organization(id="org1", name="Blue Sky Restoration"),
        Organization(id="org2", name="Other Co"),
        Office(id="O1", org_id="org1", name="Denver"),
        Office(id="O2", org_id="org1", name="Boulder"),
        Office(id="X1", org_id="org2", name="Elsewhere"),
        Department(id="D1", org_id="org1", office_id="O1", name="Water"),
        Department(id="D2", org_id="org1", office_id="O1", name="Fire"),
        Department(id="D3", org_id="org1", office_id="O2", name="Mold"),
        Department(id="XD1", org_id="org2", office_id="X1", name="Water"),
    ]
    _db.session.add_all(records)
    _db.session.flush()

    users = [
        _user("owner", "org1", Role.OWNER),
        _user("orgadmin", "org1", Role.ORG_ADMIN),
        _user("officeadmin", "org1", Role.OFFICE_ADMIN, "O1"),
        _user("u3", "org1", Role.DEPT_MANAGER, "O1", "D1"),
        _user("u7", "org1", Role.MEMBER, "O1", "D1"),
        _user("u8", "org1", Role.DEPT_MANAGER, "O2", "D3"),
        _user("x-manager", "org2", Role.DEPT_MANAGER, "X1", "XD1"),
    ]
    _db.session.add_all(users)
    _db.session.commit()
    return {r.id: r for r in records + users}


@pytest.fixture()
def auth_headers(org_tree):
    """Return a factory: auth_headers("u3") → {"Authorization": "Bearer ..."}."""

    def _headers(user_id):
        user = org_tree[user_id]
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.org_id)}"}

    return _headers


@pytest.fixture()
def make_job(org_tree):
    """Return a factory creating a Job row directly in the given state."""

    def _make(job_id, *, office_id="O1", department_id="D1", status=JobStatus.FNOL,
              assigned=(), org_id="org1", days_ago=0):
        stamp = datetime.now(timezone.utc) - timedelta(days=days_ago)
        job = Job(
            id=job_id,
            org_id=org_id,
            office_id=office_id,
            department_id=department_id,
            status=status,
            assigned_user_ids=list(assigned),
            customer_name=f"Customer {job_id}",
            created_at=stamp,
            updated_at=stamp,
        )
        _db.session.add(job)
        _db.session.commit()
        return job

    return _make
