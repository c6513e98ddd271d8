from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def generate_id() -> str:
    """Opaque string id for tenant-owned entities."""
    return str(uuid.uuid4())


class Branch(db.Model):
    """
    A physical location of a tenant's business.

    MULTI-TENANT: user_id is the owning tenant. Branch codes are unique
    per tenant, not globally.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("user_id", "code", name="uq_branches_user_code"),
        db.Index("ix_branches_user_status", "user_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    manager_id = db.Column(db.String(128), nullable=True)

    # ACTIVE, INACTIVE
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")
    is_main = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "phone": self.phone,
            "managerId": self.manager_id,
            "status": self.status,
            "isMain": self.is_main,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_user_sku", "user_id", "sku"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    # Major currency units (KSH)
    cost_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "unit": self.unit,
            "costPrice": self.cost_price,
            "sellingPrice": self.selling_price,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }
