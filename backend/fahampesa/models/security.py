from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    MULTI-TENANT: tenant_id is the tenant the caller resolved into (None when
    resolution itself failed). user_id is the raw caller uid.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_tenant_occurred", "tenant_id", "occurred_at"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    tenant_id = db.Column(db.String(128), nullable=True, index=True)
    user_id = db.Column(db.String(128), nullable=True, index=True)

    # PERMISSION_DENIED, ACCESS_RESOLUTION_FAILED, PLAN_LIMIT_REACHED, SUBSCRIPTION_EXTENDED, ...
    event_type = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "userId": self.user_id,
            "eventType": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ipAddress": self.ip_address,
            "occurredAt": to_utc_z(self.occurred_at),
        }
