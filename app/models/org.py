"""
Restoration Ops Board
Organization hierarchy models.

Models:
    - Organization:  tenant root
    - Office:        branch owned by one organization
    - Department:    team owned by exactly one office
    - User:          member of the hierarchy with a single Role

Architecture:
    Organization ──1:N──▶ Office ──1:N──▶ Department
    User ──N:1──▶ Organization (+ optional Office, Department by role)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import event as _sa_event

from app.core.roles import Role, validate_membership
from app.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    offices = db.relationship("Office", back_populates="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.name}>"


class Office(db.Model):
    __tablename__ = "offices"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    organization = db.relationship("Organization", back_populates="offices")
    departments = db.relationship("Department", back_populates="office", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Office {self.id}: {self.name}>"


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    office_id = db.Column(
        db.String(36), db.ForeignKey("offices.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    office = db.relationship("Office", back_populates="departments")

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "office_id": self.office_id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role = db.Column(db.Enum(Role, native_enum=False, length=20), nullable=False, default=Role.MEMBER)
    office_id = db.Column(
        db.String(36), db.ForeignKey("offices.id", ondelete="SET NULL"),
        nullable=True, index=True, comment="Required for all roles except OWNER/ORG_ADMIN",
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True, index=True, comment="Required for DEPT_MANAGER/MEMBER",
    )
    display_name = db.Column(db.String(200), default="")
    email = db.Column(db.String(200))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_user_org_email"),
    )

    def validate_membership(self):
        """Raise ValueError when the role's required office/department is missing."""
        # role falls back to the column default before the INSERT fills it in
        validate_membership(self.role or Role.MEMBER, self.office_id, self.department_id)

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "role": Role.parse(self.role).value if self.role else None,
            "office_id": self.office_id,
            "department_id": self.department_id,
            "display_name": self.display_name,
            "email": self.email,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} role={self.role}>"


@_sa_event.listens_for(User, "before_insert")
@_sa_event.listens_for(User, "before_update")
def _check_user_membership(mapper, connection, target) -> None:  # noqa: ARG001
    """Refuse to persist a user whose role lacks its office/department."""
    target.validate_membership()
