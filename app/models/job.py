"""
Restoration Ops Board
Job (restoration claim) model.

Lifecycle states:
    FNOL → MITIGATION → RECONSTRUCTION → REVIEW → CLOSEOUT (terminal)

Status and assignment are the only fields the workflow board mutates; the
board lane is derived from them (app.services.lanes) and never stored.
"""

from datetime import datetime, timezone
from enum import Enum

from app.models import db
from app.models.org import _utcnow, _uuid


class JobStatus(str, Enum):
    FNOL = "FNOL"
    MITIGATION = "MITIGATION"
    RECONSTRUCTION = "RECONSTRUCTION"
    REVIEW = "REVIEW"
    CLOSEOUT = "CLOSEOUT"


# Statuses a job can hold while crews are in the field.
FIELD_STATUSES = frozenset({JobStatus.MITIGATION, JobStatus.RECONSTRUCTION})

TERMINAL_STATUSES = frozenset({JobStatus.CLOSEOUT})


class Job(db.Model):
    __tablename__ = "jobs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    office_id = db.Column(
        db.String(36), db.ForeignKey("offices.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(
        db.Enum(JobStatus, native_enum=False, length=20),
        nullable=False, default=JobStatus.FNOL, index=True,
    )
    assigned_user_ids = db.Column(db.JSON, nullable=False, default=list)

    customer_name = db.Column(db.String(200), default="")
    property_address = db.Column(db.String(300), default="")
    carrier = db.Column(db.String(120), default="", comment="Insurance carrier")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    # Set explicitly by the patch that moves the job; no onupdate hook so a
    # no-op drop never refreshes it.
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.Index("ix_jobs_org_office_department", "org_id", "office_id", "department_id"),
    )

    def updated_at_utc(self) -> datetime | None:
        """updated_at as an aware UTC datetime (SQLite hands back naive values)."""
        if self.updated_at is None:
            return None
        if self.updated_at.tzinfo is None:
            return self.updated_at.replace(tzinfo=timezone.utc)
        return self.updated_at

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "office_id": self.office_id,
            "department_id": self.department_id,
            "status": JobStatus(self.status).value,
            "assigned_user_ids": list(self.assigned_user_ids or []),
            "customer_name": self.customer_name,
            "property_address": self.property_address,
            "carrier": self.carrier,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at_utc().isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Job {self.id} status={self.status}>"
