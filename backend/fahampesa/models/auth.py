from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import generate_id


class StaffMember(db.Model):
    """
    An employee account working inside an owner's tenant.

    auth_id is the staff member's own login uid; user_id is the employer
    (the tenant). Only staff with status "active" pass access checks.
    permissions holds explicit permission codes, never wildcards.
    """
    __tablename__ = "staff_members"
    __table_args__ = (
        db.Index("ix_staff_members_user_status", "user_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    auth_id = db.Column(db.String(128), nullable=False, unique=True, index=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # cashier, manager, owner
    role = db.Column(db.String(16), nullable=False, default="cashier")
    branch_ids = db.Column(db.JSON, nullable=False, default=list)
    permissions = db.Column(db.JSON, nullable=False, default=list)

    # active, inactive, suspended
    status = db.Column(db.String(16), nullable=False, default="active")
    two_factor_enabled = db.Column(db.Boolean, nullable=False, default=False)
    last_login = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "authId": self.auth_id,
            "userId": self.user_id,
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "branchIds": list(self.branch_ids or []),
            "permissions": list(self.permissions or []),
            "status": self.status,
            "twoFactorEnabled": self.two_factor_enabled,
            "lastLogin": to_utc_z(self.last_login),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class StaffActivityLog(db.Model):
    """
    Append-only trail of what staff did inside a tenant.

    Written by the client for actions it wants on record (logins, voids,
    price overrides); severity is one of info, warning, error, critical.
    """
    __tablename__ = "staff_activity_logs"
    __table_args__ = (
        db.Index("ix_staff_activity_logs_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    staff_id = db.Column(db.String(36), db.ForeignKey("staff_members.id"), nullable=False, index=True)
    staff_name = db.Column(db.String(120), nullable=True)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=True)

    action = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=False)
    details = db.Column("metadata", db.JSON, nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="info")

    recorded_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "staffId": self.staff_id,
            "staffName": self.staff_name,
            "branchId": self.branch_id,
            "action": self.action,
            "description": self.description,
            "metadata": self.details,
            "severity": self.severity,
            "recordedBy": self.recorded_by,
            "timestamp": to_utc_z(self.created_at),
        }
