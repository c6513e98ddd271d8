from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import generate_id


class StockLevel(db.Model):
    """
    Quantity of one product held at one branch.

    INVARIANTS:
    - exactly one row per (branch_id, product_id)
    - current_stock >= 0, reserved_stock >= 0, current_stock - reserved_stock >= 0
    - never hard-deleted; every change to current_stock has a StockMovement

    CONCURRENCY: version_id is an optimistic lock. A write against a stale
    version raises StaleDataError and the caller retries on fresh state.
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_stock_levels_branch_product"),
        db.Index("ix_stock_levels_user_branch", "user_id", "branch_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=0)
    max_stock_level = db.Column(db.Integer, nullable=True)
    average_cost_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    last_count_date = db.Column(db.DateTime, nullable=True)
    last_count_stock = db.Column(db.Integer, nullable=True)
    last_count_user_id = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_levels", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("stock_levels", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_stock(self) -> int:
        return self.current_stock - self.reserved_stock

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.reorder_point

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "branchId": self.branch_id,
            "currentStock": self.current_stock,
            "reservedStock": self.reserved_stock,
            "availableStock": self.available_stock,
            "reorderPoint": self.reorder_point,
            "reorderQuantity": self.reorder_quantity,
            "maxStockLevel": self.max_stock_level,
            "averageCostPrice": self.average_cost_price,
            "lastCountDate": to_utc_z(self.last_count_date),
            "lastCountStock": self.last_count_stock,
            "lastCountUserId": self.last_count_user_id,
            "updatedAt": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only ledger of stock changes.

    quantity is the signed delta; new_stock = previous_stock + quantity.
    reference_type/reference_id point at the document that caused the
    movement (transfer, purchase order, audit, sale).

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_user_created", "user_id", "created_at"),
        db.Index("ix_stock_movements_branch_product", "branch_id", "product_id"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)

    # INITIAL, ADJUSTMENT, TRANSFER_IN, TRANSFER_OUT, SALE, AUDIT_ADJUSTMENT, PURCHASE_RECEIPT
    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)

    reason = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(36), nullable=True)

    actor_id = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "branchId": self.branch_id,
            "movementType": self.movement_type,
            "quantity": self.quantity,
            "previousStock": self.previous_stock,
            "newStock": self.new_stock,
            "unitCost": self.unit_cost,
            "reason": self.reason,
            "notes": self.notes,
            "referenceType": self.reference_type,
            "referenceId": self.reference_id,
            "actorId": self.actor_id,
            "createdAt": to_utc_z(self.created_at),
        }


class LowStockAlert(db.Model):
    """At most one active alert per (product_id, branch_id); enforced by the generator."""
    __tablename__ = "low_stock_alerts"
    __table_args__ = (
        db.Index("ix_low_stock_alerts_scope", "user_id", "branch_id", "is_active"),
        db.Index("ix_low_stock_alerts_product_branch", "product_id", "branch_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)

    current_stock = db.Column(db.Integer, nullable=False)
    reorder_point = db.Column(db.Integer, nullable=False)
    shortage = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    acknowledged_by = db.Column(db.String(128), nullable=True)
    acknowledged_at = db.Column(db.DateTime, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "branchId": self.branch_id,
            "currentStock": self.current_stock,
            "reorderPoint": self.reorder_point,
            "shortage": self.shortage,
            "isActive": self.is_active,
            "acknowledgedBy": self.acknowledged_by,
            "acknowledgedAt": to_utc_z(self.acknowledged_at),
            "resolvedAt": to_utc_z(self.resolved_at),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class ExpiryAlert(db.Model):
    __tablename__ = "expiry_alerts"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)

    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.DateTime, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    acknowledged_by = db.Column(db.String(128), nullable=True)
    acknowledged_at = db.Column(db.DateTime, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "branchId": self.branch_id,
            "batchNumber": self.batch_number,
            "expiryDate": to_utc_z(self.expiry_date),
            "quantity": self.quantity,
            "isActive": self.is_active,
            "acknowledgedBy": self.acknowledged_by,
            "acknowledgedAt": to_utc_z(self.acknowledged_at),
            "resolvedAt": to_utc_z(self.resolved_at),
            "createdAt": to_utc_z(self.created_at),
        }
