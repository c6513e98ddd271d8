# backend/fahampesa/services/purchase_order_service.py
"""
Suppliers and purchase orders.

LIFECYCLE:
1. DRAFT: Created with lines (quantityOrdered, unitCost)
2. PENDING: Submitted for approval
3. APPROVED / REJECTED: Decided by someone other than the requester
4. SENT: Transmitted to the supplier
5. RECEIVED: Every line fully received

Receiving posts non-defective units into the PO branch through the
inventory ledger (PURCHASE_RECEIPT movements) in the same transaction as the
PO update. A partial delivery leaves the PO in SENT.
"""
from __future__ import annotations

import math
from datetime import datetime

from flask import current_app

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, Supplier
from ..time_utils import local_month_bounds, to_utc_z, utcnow
from ..validation import (
    coerce_amount,
    coerce_bool,
    coerce_datetime,
    coerce_list,
    coerce_non_negative_int,
    coerce_positive_int,
    optional_str,
    require_str,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import PURCHASE_ORDER_PREFIX, next_document_number
from .inventory_service import MOVEMENT_PURCHASE_RECEIPT, receive_into_stock
from .plan_limits import enforce_plan_limit
from .tenant_service import get_owned, require_branch, require_product, require_supplier


PO_STATUS_DRAFT = "DRAFT"
PO_STATUS_PENDING = "PENDING"
PO_STATUS_APPROVED = "APPROVED"
PO_STATUS_REJECTED = "REJECTED"
PO_STATUS_SENT = "SENT"
PO_STATUS_RECEIVED = "RECEIVED"

PO_STATUSES = (
    PO_STATUS_DRAFT,
    PO_STATUS_PENDING,
    PO_STATUS_APPROVED,
    PO_STATUS_REJECTED,
    PO_STATUS_SENT,
    PO_STATUS_RECEIVED,
)

# Orders the tenant has committed money to
COMMITTED_PO_STATUSES = (PO_STATUS_APPROVED, PO_STATUS_SENT, PO_STATUS_RECEIVED)

REFERENCE_TYPE = "PURCHASE_ORDER"


# =============================================================================
# SUPPLIERS
# =============================================================================

def create_supplier(user_id: str, data: dict) -> Supplier:
    """Create a supplier. Gated by the tenant's `suppliers` plan limit."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    name = require_str(data, "name")
    enforce_plan_limit(user_id, "suppliers")

    supplier = Supplier(
        user_id=user_id,
        name=name,
        contact_person=optional_str(data, "contactPerson"),
        email=optional_str(data, "email"),
        phone=optional_str(data, "phone"),
        address=optional_str(data, "address"),
        payment_terms=optional_str(data, "paymentTerms"),
        status="ACTIVE",
    )
    db.session.add(supplier)
    db.session.flush()
    return supplier


def list_suppliers(user_id: str, include_archived: bool = False) -> list[Supplier]:
    query = Supplier.query.filter_by(user_id=user_id)
    if not include_archived:
        query = query.filter_by(status="ACTIVE")
    return query.order_by(Supplier.name).all()


def archive_supplier(supplier_id: str, user_id: str) -> Supplier:
    supplier = require_supplier(user_id, supplier_id)
    supplier.status = "ARCHIVED"
    db.session.flush()
    return supplier


# =============================================================================
# SUPPLIER PERFORMANCE
# =============================================================================

RATING_FIELDS = (
    ("qualityRating", "quality_rating"),
    ("serviceRating", "service_rating"),
    ("pricingRating", "pricing_rating"),
)
DEFAULT_RATING = 5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _apply_delivery(supplier: Supplier, on_time: bool, delivery_days: float) -> None:
    """
    Fold one delivery into the running on-time rate and average lead time.

    completed_orders is the weight of the history so far.
    """
    total = supplier.completed_orders or 0
    rate = supplier.on_time_delivery_rate if supplier.on_time_delivery_rate is not None else 100
    on_time_count = _round_half_up(rate / 100 * total) + (1 if on_time else 0)
    new_total = total + 1
    supplier.on_time_delivery_rate = _round_half_up(on_time_count / new_total * 100)
    supplier.average_delivery_days = _round_half_up(
        ((supplier.average_delivery_days or 0) * total + delivery_days) / new_total
    )


def _record_delivery(po: PurchaseOrder) -> None:
    """Update the supplier's delivery record once a PO is fully received."""
    supplier = lock_for_update(Supplier.query.filter_by(id=po.supplier_id, user_id=po.user_id)).first()
    if supplier is None:
        return
    received_at = po.received_at or utcnow()
    started = po.sent_to_supplier_at or po.created_at or received_at
    delivery_days = max(math.ceil((received_at - started).total_seconds() / 86400), 0)
    on_time = po.expected_delivery_date is None or received_at <= po.expected_delivery_date
    _apply_delivery(supplier, on_time, delivery_days)
    supplier.completed_orders = (supplier.completed_orders or 0) + 1


def update_supplier_performance(supplier_id: str, user_id: str, data: dict) -> Supplier:
    """
    Record a delivery outcome and/or ratings against a supplier.

    Request data:
        onTimeDelivery? (bool) and deliveryDays? (number >= 0), applied
        together; qualityRating?, serviceRating?, pricingRating? (1-5)

    Raises:
        ValidationError: a field has the wrong type or range
        NotFoundError: supplier missing or foreign
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    on_time = data.get("onTimeDelivery")
    if on_time is not None and not isinstance(on_time, bool):
        raise ValidationError("onTimeDelivery must be a boolean")
    delivery_days = data.get("deliveryDays")
    if delivery_days is not None and (not _is_number(delivery_days) or delivery_days < 0):
        raise ValidationError("deliveryDays must be a non-negative number")
    ratings = {}
    for field, attr in RATING_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        if not _is_number(value) or not 1 <= value <= 5 or value != int(value):
            raise ValidationError(f"{field} must be between 1 and 5")
        ratings[attr] = int(value)

    def _op():
        supplier = lock_for_update(Supplier.query.filter_by(id=supplier_id, user_id=user_id)).first()
        if supplier is None:
            raise NotFoundError("Supplier not found")
        if on_time is not None and delivery_days is not None:
            _apply_delivery(supplier, on_time, delivery_days)
        for attr, value in ratings.items():
            setattr(supplier, attr, value)
        supplier.updated_at = utcnow()
        db.session.flush()
        return supplier

    return run_with_retry(_op)


def get_supplier_performance_report(supplier_id: str, user_id: str) -> dict:
    supplier = require_supplier(user_id, supplier_id)
    orders = PurchaseOrder.query.filter_by(user_id=user_id, supplier_id=supplier.id).all()

    total = len(orders)
    completed = sum(1 for po in orders if po.status == PO_STATUS_RECEIVED)
    rejected = sum(1 for po in orders if po.status == PO_STATUS_REJECTED)
    spend = sum(po.total_amount or 0 for po in orders if po.status in COMMITTED_PO_STATUSES)
    ratings = [getattr(supplier, attr) or DEFAULT_RATING for _, attr in RATING_FIELDS]

    return {
        "supplierId": supplier.id,
        "supplierName": supplier.name,
        "onTimeDeliveryRate": supplier.on_time_delivery_rate,
        "averageDeliveryDays": supplier.average_delivery_days,
        "orderFulfillmentRate": _round_half_up(completed / total * 100) if total else 100,
        "qualityScore": _round_half_up(sum(ratings) / len(ratings)),
        "qualityRating": supplier.quality_rating,
        "serviceRating": supplier.service_rating,
        "pricingRating": supplier.pricing_rating,
        "totalOrders": total,
        "completedOrders": completed,
        "rejectedOrders": rejected,
        "totalSpend": round(spend, 2),
        "lastOrderDate": to_utc_z(supplier.last_order_date),
    }


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

def _locked_po(po_id: str, user_id: str) -> PurchaseOrder:
    po = lock_for_update(PurchaseOrder.query.filter_by(id=po_id, user_id=user_id)).first()
    if po is None:
        raise NotFoundError("Purchase order not found")
    return po


def create_purchase_order(
    user_id: str,
    supplier_id: str,
    branch_id: str,
    items: list,
    *,
    actor_id: str | None = None,
    notes: str | None = None,
    expected_delivery_date: str | None = None,
    currency: str = "KSH",
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order.

    Args:
        items: [{"productId": str, "quantityOrdered": int, "unitCost": number}]
        actor_id: Requester; the requester can never approve this PO

    Raises:
        NotFoundError: Supplier, branch or product missing or foreign
        ValidationError: Archived supplier or bad lines
    """
    supplier = require_supplier(user_id, supplier_id)
    if supplier.status != "ACTIVE":
        raise ValidationError("Supplier is archived")
    branch = require_branch(user_id, branch_id, active=True)

    po = PurchaseOrder(
        user_id=user_id,
        po_number=next_document_number(
            user_id=user_id, document_type="PURCHASE_ORDER", prefix=PURCHASE_ORDER_PREFIX
        ),
        supplier_id=supplier.id,
        branch_id=branch.id,
        status=PO_STATUS_DRAFT,
        requested_by=actor_id or user_id,
        notes=notes,
        expected_delivery_date=coerce_datetime(expected_delivery_date, "expectedDeliveryDate"),
        currency=currency,
    )

    seen = set()
    subtotal = 0.0
    for position, raw in enumerate(coerce_list(items, "items")):
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        product = require_product(user_id, raw.get("productId"))
        if product.id in seen:
            raise ValidationError(f"Product {product.name} is listed more than once")
        seen.add(product.id)
        quantity = coerce_positive_int(raw.get("quantityOrdered", raw.get("quantity")), "quantityOrdered")
        unit_cost = coerce_amount(raw.get("unitCost", product.cost_price or 0), "unitCost")
        po.items.append(PurchaseOrderItem(
            product_id=product.id,
            position=position,
            quantity_ordered=quantity,
            quantity_received=0,
            defective_quantity=0,
            unit_cost=unit_cost,
        ))
        subtotal += quantity * unit_cost

    po.subtotal = round(subtotal, 2)
    po.total_amount = po.subtotal
    db.session.add(po)
    db.session.flush()
    supplier.total_orders = Supplier.total_orders + 1
    supplier.last_order_date = po.created_at
    db.session.flush()
    return po


def submit_purchase_order(po_id: str, user_id: str) -> PurchaseOrder:
    """DRAFT -> PENDING."""
    def _op():
        po = _locked_po(po_id, user_id)
        if po.status != PO_STATUS_DRAFT:
            raise StateConflictError("Only draft purchase orders can be submitted")
        po.status = PO_STATUS_PENDING
        db.session.flush()
        return po

    return run_with_retry(_op)


PO_UPDATE_ACTIONS = ("submit",)


def update_purchase_order(po_id: str, user_id: str, data: dict) -> PurchaseOrder:
    """
    Generic update entry point. Only `submit` is accepted here; approval,
    sending and receipt have their own operations.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    if data.get("action") not in PO_UPDATE_ACTIONS:
        raise ValidationError("Invalid action")
    return submit_purchase_order(po_id, user_id)


def approve_purchase_order(po_id: str, user_id: str, data: dict, *, actor_id: str | None = None) -> PurchaseOrder:
    """
    Approve or reject a PENDING purchase order.

    Request data:
        approved (bool, required), rejectionReason (required when rejecting),
        notes?

    Raises:
        ValidationError: approved not a boolean, or blank rejection reason
        StateConflictError: PO is not PENDING, or the actor raised the PO
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    if "approved" not in data:
        raise ValidationError("approved is required")
    approved = coerce_bool(data.get("approved"), "approved")
    rejection_reason = data.get("rejectionReason")
    if not approved and (not isinstance(rejection_reason, str) or not rejection_reason.strip()):
        raise ValidationError("Rejection reason is required when rejecting a purchase order")
    actor_id = actor_id or user_id

    def _op():
        po = _locked_po(po_id, user_id)
        if po.status != PO_STATUS_PENDING:
            raise StateConflictError("Only pending purchase orders can be approved or rejected")
        if po.requested_by == actor_id:
            raise StateConflictError("You cannot approve your own purchase order")

        now = utcnow()
        if approved:
            po.status = PO_STATUS_APPROVED
            po.approved_by = actor_id
            po.approved_at = now
            po.approval_notes = data.get("notes")
        else:
            po.status = PO_STATUS_REJECTED
            po.rejected_by = actor_id
            po.rejected_at = now
            po.rejection_reason = rejection_reason.strip()
        db.session.flush()
        return po

    return run_with_retry(_op)


def send_purchase_order(po_id: str, user_id: str, data: dict | None = None) -> PurchaseOrder:
    """APPROVED -> SENT. sentAt defaults to now."""
    data = data or {}
    sent_at = coerce_datetime(data.get("sentAt"), "sentAt") or utcnow()

    def _op():
        po = _locked_po(po_id, user_id)
        if po.status != PO_STATUS_APPROVED:
            raise StateConflictError("Only approved purchase orders can be sent to suppliers")
        po.status = PO_STATUS_SENT
        po.sent_to_supplier_at = sent_at
        po.supplier_notes = data.get("supplierNotes")
        db.session.flush()
        return po

    return run_with_retry(_op)


def receive_purchase_order(
    po_id: str,
    user_id: str,
    items: list,
    *,
    actor_id: str | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Record a delivery against a SENT purchase order.

    Args:
        items: [{"productId": str, "quantityReceived": int, "defectiveQuantity"?: int}]
            quantityReceived counts every unit delivered, defective ones included.

    Returns:
        PurchaseOrder, RECEIVED once every line is fully received

    Raises:
        StateConflictError: PO is not SENT
        ValidationError: Unknown product, over-delivery, defective > received
    """
    raw_items = coerce_list(items, "items")
    actor_id = actor_id or user_id

    def _op():
        po = _locked_po(po_id, user_id)
        if po.status != PO_STATUS_SENT:
            raise StateConflictError("Only sent purchase orders can be received")

        lines = {item.product_id: item for item in po.items}
        deliveries = []
        seen = set()
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object")
            product_id = raw.get("productId")
            line = lines.get(product_id)
            if line is None:
                raise ValidationError(f"Product {product_id} is not part of this purchase order")
            if product_id in seen:
                raise ValidationError(f"Product {product_id} is listed more than once")
            seen.add(product_id)
            received = coerce_non_negative_int(raw.get("quantityReceived"), "quantityReceived")
            defective = coerce_non_negative_int(raw.get("defectiveQuantity", 0), "defectiveQuantity")
            if defective > received:
                raise ValidationError("defectiveQuantity cannot exceed quantityReceived")
            if received > line.outstanding_quantity:
                raise ValidationError(
                    f"Received quantity for product {product_id} exceeds the "
                    f"outstanding quantity ({line.outstanding_quantity})"
                )
            deliveries.append((line, received, defective))

        for line, received, defective in deliveries:
            line.quantity_received += received
            line.defective_quantity += defective
            good = received - defective
            if good > 0:
                receive_into_stock(
                    user_id=user_id,
                    branch_id=po.branch_id,
                    product_id=line.product_id,
                    quantity=good,
                    movement_type=MOVEMENT_PURCHASE_RECEIPT,
                    actor_id=actor_id,
                    reference_type=REFERENCE_TYPE,
                    reference_id=po.id,
                    unit_cost=line.unit_cost,
                    notes=f"Purchase order {po.po_number}",
                )

        if po.is_fully_received:
            po.status = PO_STATUS_RECEIVED
            po.received_by = actor_id
            po.received_at = utcnow()
            _record_delivery(po)
        if notes:
            po.notes = notes
        # Line-only changes do not touch the PO row; bump it so concurrent receipts conflict
        po.updated_at = utcnow()
        db.session.flush()
        return po

    return run_with_retry(_op)


def get_purchase_order(po_id: str, user_id: str) -> PurchaseOrder:
    return get_owned(PurchaseOrder, po_id, user_id, "Purchase order")


def list_purchase_orders(user_id: str, status: str | None = None, branch_id: str | None = None) -> list[PurchaseOrder]:
    query = PurchaseOrder.query.filter_by(user_id=user_id)
    if status:
        if status not in PO_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query = query.filter_by(status=status)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    return query.order_by(PurchaseOrder.created_at.desc()).all()


# =============================================================================
# DASHBOARDS
# =============================================================================

RECENT_LIMIT = 10
TOP_SUPPLIER_LIMIT = 5


def _scoped_orders(user_id: str, branch_ids=None):
    """PO query for the tenant, limited to `branch_ids` when given."""
    query = PurchaseOrder.query.filter(PurchaseOrder.user_id == user_id)
    if branch_ids is not None:
        query = query.filter(PurchaseOrder.branch_id.in_(list(branch_ids)))
    return query


def get_pending_approvals(user_id: str, branch_ids=None) -> list[PurchaseOrder]:
    """PENDING orders, oldest first."""
    return (
        _scoped_orders(user_id, branch_ids)
        .filter(PurchaseOrder.status == PO_STATUS_PENDING)
        .order_by(PurchaseOrder.created_at.asc())
        .all()
    )


def get_overdue_purchase_orders(user_id: str, now: datetime | None = None, branch_ids=None) -> list[PurchaseOrder]:
    """SENT orders whose expected delivery date has passed."""
    now = now or utcnow()
    return (
        _scoped_orders(user_id, branch_ids)
        .filter(
            PurchaseOrder.status == PO_STATUS_SENT,
            PurchaseOrder.expected_delivery_date.isnot(None),
            PurchaseOrder.expected_delivery_date < now,
        )
        .order_by(PurchaseOrder.expected_delivery_date.asc())
        .all()
    )


def _activity(po: PurchaseOrder) -> dict:
    return {
        "id": po.id,
        "type": po.status,
        "poNumber": po.po_number,
        "supplierName": po.supplier.name if po.supplier else None,
        "totalAmount": po.total_amount,
        "timestamp": to_utc_z(po.updated_at),
    }


def get_purchase_order_dashboard(
    user_id: str,
    *,
    include_details: bool = False,
    now: datetime | None = None,
    branch_ids=None,
) -> dict:
    """
    Headline numbers for the purchasing screen.

    monthlySpend covers committed orders raised in the current calendar
    month of the business time zone. branch_ids limits every figure to
    those branches.
    """
    now = now or utcnow()
    month_start, month_end = local_month_bounds(now, current_app.config["BUSINESS_TIMEZONE"])
    orders = _scoped_orders(user_id, branch_ids).all()
    pending = get_pending_approvals(user_id, branch_ids)
    overdue = get_overdue_purchase_orders(user_id, now, branch_ids)

    monthly_spend = sum(
        po.total_amount or 0
        for po in orders
        if po.status in COMMITTED_PO_STATUSES and month_start <= po.created_at < month_end
    )
    recent = sorted(orders, key=lambda po: po.updated_at, reverse=True)[:RECENT_LIMIT]

    dashboard = {
        "totalOrders": len(orders),
        "pendingOrders": len(pending),
        "overdueOrders": len(overdue),
        "monthlySpend": round(monthly_spend, 2),
        "recentActivity": [_activity(po) for po in recent],
    }
    if include_details:
        dashboard["pendingApprovalsList"] = [po.to_dict() for po in pending]
        dashboard["overdueOrdersList"] = [po.to_dict() for po in overdue]
    return dashboard


def get_supplier_dashboard(user_id: str, now: datetime | None = None, branch_ids=None) -> dict:
    """Supplier counts, the busiest reliable suppliers and recent orders."""
    suppliers = Supplier.query.filter_by(user_id=user_id).all()
    ranked = sorted(
        (s for s in suppliers if (s.total_orders or 0) > 0),
        key=lambda s: (s.total_orders or 0) * 1000 + (s.on_time_delivery_rate or 0),
        reverse=True,
    )
    recent = (
        _scoped_orders(user_id, branch_ids)
        .order_by(PurchaseOrder.created_at.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    return {
        "totalSuppliers": len(suppliers),
        "activeSuppliers": sum(1 for s in suppliers if s.status == "ACTIVE"),
        "topSuppliers": [s.to_dict() for s in ranked[:TOP_SUPPLIER_LIMIT]],
        "recentOrders": [po.to_dict() for po in recent],
        "pendingApprovals": len(get_pending_approvals(user_id, branch_ids)),
        "overdueDeliveries": len(get_overdue_purchase_orders(user_id, now, branch_ids)),
    }
