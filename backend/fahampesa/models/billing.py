from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import generate_id


class Subscription(db.Model):
    """
    A paid Pro-plan period for a tenant.

    LIFECYCLE: pending -> active -> expired | cancelled, or pending -> failed.

    The stored status is not authoritative for expiry: an "active" row whose
    end_date has passed is treated as expired wherever it is read.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_user_status", "user_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)

    # monthly, yearly
    plan_type = db.Column(db.String(16), nullable=False)
    plan_name = db.Column(db.String(64), nullable=False)
    # pending, active, expired, failed, cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    amount = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    # KSH, USD
    currency = db.Column(db.String(3), nullable=False, default="KSH")

    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)

    transaction_id = db.Column(db.String(64), nullable=True)
    checkout_request_id = db.Column(db.String(128), nullable=True, index=True)
    phone_number = db.Column(db.String(32), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)

    # Admin actions
    extended_by = db.Column(db.String(128), nullable=True)
    extended_at = db.Column(db.DateTime, nullable=True)
    revoked_by = db.Column(db.String(128), nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)
    admin_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, effective_status: str | None = None) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "email": self.email,
            "planType": self.plan_type,
            "planName": self.plan_name,
            "status": effective_status or self.status,
            "amount": self.amount,
            "currency": self.currency,
            "startDate": to_utc_z(self.start_date),
            "endDate": to_utc_z(self.end_date),
            "transactionId": self.transaction_id,
            "checkoutRequestId": self.checkout_request_id,
            "phoneNumber": self.phone_number,
            "failureReason": self.failure_reason,
            "extendedBy": self.extended_by,
            "extendedAt": to_utc_z(self.extended_at),
            "revokedBy": self.revoked_by,
            "revokedAt": to_utc_z(self.revoked_at),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
