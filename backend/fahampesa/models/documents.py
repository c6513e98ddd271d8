from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import generate_id


# =============================================================================
# BRANCH TRANSFERS
# =============================================================================

class BranchTransfer(db.Model):
    """
    Stock transfer between two branches of the same tenant.

    LIFECYCLE:
    1. REQUESTED: created, awaiting approval
    2. APPROVED: quantities approved (possibly reduced), ready to ship
    3. SHIPPED: source stock decremented, in transit
    4. RECEIVED: destination stock incremented
    REJECTED is terminal and reachable from REQUESTED or APPROVED.

    CONCURRENCY: status changes are guarded by version_id, so two approvers
    racing on the same transfer cannot both succeed.
    """
    __tablename__ = "branch_transfers"
    __table_args__ = (
        db.UniqueConstraint("user_id", "transfer_number", name="uq_branch_transfers_user_number"),
        db.Index("ix_branch_transfers_user_status", "user_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    # TR-YYYY-NNN
    transfer_number = db.Column(db.String(32), nullable=False)

    from_branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False, index=True)

    # REQUESTED, APPROVED, SHIPPED, RECEIVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="REQUESTED", index=True)
    # LOW, NORMAL, HIGH, URGENT
    priority = db.Column(db.String(16), nullable=False, default="NORMAL")
    reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.String(128), nullable=False)
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    shipped_by = db.Column(db.String(128), nullable=True)
    shipped_at = db.Column(db.DateTime, nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)
    estimated_arrival = db.Column(db.DateTime, nullable=True)
    shipping_notes = db.Column(db.Text, nullable=True)
    received_by = db.Column(db.String(128), nullable=True)
    received_at = db.Column(db.DateTime, nullable=True)
    receiving_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "BranchTransferItem",
        backref="transfer",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="BranchTransferItem.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def item_for(self, product_id: str):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "transferNumber": self.transfer_number,
            "fromBranchId": self.from_branch_id,
            "toBranchId": self.to_branch_id,
            "status": self.status,
            "priority": self.priority,
            "reason": self.reason,
            "notes": self.notes,
            "requestedBy": self.requested_by,
            "requestedAt": to_utc_z(self.requested_at),
            "approvedBy": self.approved_by,
            "approvedAt": to_utc_z(self.approved_at),
            "rejectedBy": self.rejected_by,
            "rejectedAt": to_utc_z(self.rejected_at),
            "rejectionReason": self.rejection_reason,
            "shippedBy": self.shipped_by,
            "shippedAt": to_utc_z(self.shipped_at),
            "trackingNumber": self.tracking_number,
            "estimatedArrival": to_utc_z(self.estimated_arrival),
            "shippingNotes": self.shipping_notes,
            "receivedBy": self.received_by,
            "receivedAt": to_utc_z(self.received_at),
            "receivingNotes": self.receiving_notes,
            "items": [item.to_dict() for item in self.items],
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class BranchTransferItem(db.Model):
    __tablename__ = "branch_transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_branch_transfer_items_product"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    transfer_id = db.Column(db.String(36), db.ForeignKey("branch_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    requested_quantity = db.Column(db.Integer, nullable=False)
    approved_quantity = db.Column(db.Integer, nullable=True)
    shipped_quantity = db.Column(db.Integer, nullable=True)
    received_quantity = db.Column(db.Integer, nullable=True)
    unit_cost = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    @property
    def discrepancy(self):
        if self.shipped_quantity is None or self.received_quantity is None:
            return None
        return self.received_quantity - self.shipped_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "requestedQuantity": self.requested_quantity,
            "approvedQuantity": self.approved_quantity,
            "shippedQuantity": self.shipped_quantity,
            "receivedQuantity": self.received_quantity,
            "discrepancy": self.discrepancy,
            "unitCost": self.unit_cost,
            "notes": self.notes,
        }


# =============================================================================
# STOCK AUDITS
# =============================================================================

class StockAudit(db.Model):
    """
    Physical count of a branch (or a subset of products).

    LIFECYCLE: PLANNED -> IN_PROGRESS -> COMPLETED, or CANCELLED before
    completion. Reconciliation moves the audit to COMPLETED and rewrites
    stock to the counted quantities.
    """
    __tablename__ = "stock_audits"
    __table_args__ = (
        db.Index("ix_stock_audits_user_branch", "user_id", "branch_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)

    # FULL, CYCLE, SPOT
    audit_type = db.Column(db.String(16), nullable=False, default="FULL")
    # PLANNED, IN_PROGRESS, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PLANNED", index=True)
    notes = db.Column(db.Text, nullable=True)

    planned_by = db.Column(db.String(128), nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_by = db.Column(db.String(128), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    total_products = db.Column(db.Integer, nullable=False, default=0)
    products_with_discrepancy = db.Column(db.Integer, nullable=False, default=0)
    total_discrepancy_value = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship(
        "StockAuditItem",
        backref="audit",
        lazy=True,
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "branchId": self.branch_id,
            "auditType": self.audit_type,
            "status": self.status,
            "notes": self.notes,
            "plannedBy": self.planned_by,
            "startedAt": to_utc_z(self.started_at),
            "completedBy": self.completed_by,
            "completedAt": to_utc_z(self.completed_at),
            "totalProducts": self.total_products,
            "productsWithDiscrepancy": self.products_with_discrepancy,
            "totalDiscrepancyValue": self.total_discrepancy_value,
            "items": [item.to_dict() for item in self.items],
            "createdAt": to_utc_z(self.created_at),
        }


class StockAuditItem(db.Model):
    __tablename__ = "stock_audit_items"
    __table_args__ = (
        db.UniqueConstraint("audit_id", "product_id", name="uq_stock_audit_items_product"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    audit_id = db.Column(db.String(36), db.ForeignKey("stock_audits.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)

    system_stock = db.Column(db.Integer, nullable=False)
    physical_stock = db.Column(db.Integer, nullable=True)
    discrepancy = db.Column(db.Integer, nullable=True)
    unit_cost_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    discrepancy_value = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=True)
    is_reconciled = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "systemStock": self.system_stock,
            "physicalStock": self.physical_stock,
            "discrepancy": self.discrepancy,
            "unitCostPrice": self.unit_cost_price,
            "discrepancyValue": self.discrepancy_value,
            "isReconciled": self.is_reconciled,
            "notes": self.notes,
        }


# =============================================================================
# SUPPLIERS AND PURCHASE ORDERS
# =============================================================================

class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    contact_person = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    payment_terms = db.Column(db.String(64), nullable=True)

    # ACTIVE, ARCHIVED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    # Delivery performance, maintained on receipt and by manual rating
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    completed_orders = db.Column(db.Integer, nullable=False, default=0)
    on_time_delivery_rate = db.Column(db.Integer, nullable=False, default=100)
    average_delivery_days = db.Column(db.Integer, nullable=False, default=0)
    quality_rating = db.Column(db.Integer, nullable=True)
    service_rating = db.Column(db.Integer, nullable=True)
    pricing_rating = db.Column(db.Integer, nullable=True)
    last_order_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "contactPerson": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "paymentTerms": self.payment_terms,
            "status": self.status,
            "totalOrders": self.total_orders,
            "completedOrders": self.completed_orders,
            "onTimeDeliveryRate": self.on_time_delivery_rate,
            "averageDeliveryDays": self.average_delivery_days,
            "qualityRating": self.quality_rating,
            "serviceRating": self.service_rating,
            "pricingRating": self.pricing_rating,
            "lastOrderDate": to_utc_z(self.last_order_date),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order raised against a supplier for delivery to one branch.

    LIFECYCLE:
    1. DRAFT: being prepared
    2. PENDING: submitted, awaiting approval by someone other than the requester
    3. APPROVED / REJECTED
    4. SENT: transmitted to the supplier
    5. RECEIVED: every line fully received; stock posted to the branch
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("user_id", "po_number", name="uq_purchase_orders_user_number"),
        db.Index("ix_purchase_orders_user_status", "user_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    # PO-YYYY-NNN
    po_number = db.Column(db.String(32), nullable=False)
    supplier_id = db.Column(db.String(36), db.ForeignKey("suppliers.id"), nullable=False, index=True)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False, index=True)

    # DRAFT, PENDING, APPROVED, REJECTED, SENT, RECEIVED
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    requested_by = db.Column(db.String(128), nullable=False)
    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    sent_to_supplier_at = db.Column(db.DateTime, nullable=True)
    supplier_notes = db.Column(db.Text, nullable=True)
    expected_delivery_date = db.Column(db.DateTime, nullable=True)
    received_by = db.Column(db.String(128), nullable=True)
    received_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="KSH")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier")
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_fully_received(self) -> bool:
        return bool(self.items) and all(item.quantity_received >= item.quantity_ordered for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "poNumber": self.po_number,
            "supplierId": self.supplier_id,
            "supplierName": self.supplier.name if self.supplier else None,
            "branchId": self.branch_id,
            "status": self.status,
            "requestedBy": self.requested_by,
            "approvedBy": self.approved_by,
            "approvedAt": to_utc_z(self.approved_at),
            "approvalNotes": self.approval_notes,
            "rejectedBy": self.rejected_by,
            "rejectedAt": to_utc_z(self.rejected_at),
            "rejectionReason": self.rejection_reason,
            "sentToSupplierAt": to_utc_z(self.sent_to_supplier_at),
            "supplierNotes": self.supplier_notes,
            "expectedDeliveryDate": to_utc_z(self.expected_delivery_date),
            "receivedBy": self.received_by,
            "receivedAt": to_utc_z(self.received_at),
            "notes": self.notes,
            "subtotal": self.subtotal,
            "totalAmount": self.total_amount,
            "currency": self.currency,
            "items": [item.to_dict() for item in self.items],
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_purchase_order_items_product"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    purchase_order_id = db.Column(db.String(36), db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    defective_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def line_total(self) -> float:
        return round(self.quantity_ordered * (self.unit_cost or 0), 2)

    @property
    def outstanding_quantity(self) -> int:
        return max(self.quantity_ordered - self.quantity_received, 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "quantityOrdered": self.quantity_ordered,
            "quantityReceived": self.quantity_received,
            "defectiveQuantity": self.defective_quantity,
            "unitCost": self.unit_cost,
            "lineTotal": self.line_total,
        }


# =============================================================================
# DOCUMENT NUMBERING
# =============================================================================

class DocumentSequence(db.Model):
    """
    Atomic per-tenant, per-year document sequences (TR-2026-001, PO-2026-001).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("user_id", "document_type", "year", name="uq_doc_sequences_user_type_year"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "documentType": self.document_type,
            "year": self.year,
            "nextNumber": self.next_number,
            "updatedAt": to_utc_z(self.updated_at),
        }
