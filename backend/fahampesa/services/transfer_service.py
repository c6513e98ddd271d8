# backend/fahampesa/services/transfer_service.py
"""
Branch transfer workflow.

WHY: Move stock between two branches of the same tenant with approval,
shipping and receiving steps. Stock leaves the source when the transfer is
shipped and arrives at the destination when it is received, each side
through the inventory ledger.

LIFECYCLE:
1. REQUESTED: Transfer created with requested quantities
2. APPROVED: Approver set approved quantities (may be lower than requested)
3. SHIPPED: Source stock decremented by approved quantities (TRANSFER_OUT)
4. RECEIVED: Destination stock incremented by received quantities (TRANSFER_IN)
REJECTED: Terminal; reachable from REQUESTED or APPROVED

Status only moves forward along this list or exits to REJECTED. Every status
write re-reads the transfer under lock, and version_id makes a racing second
writer fail with StaleDataError instead of overwriting.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import BranchTransfer, BranchTransferItem, StockLevel
from ..time_utils import utcnow
from ..validation import coerce_datetime, coerce_list, coerce_non_negative_int, coerce_positive_int
from .concurrency import lock_for_update, run_with_retry
from .document_service import TRANSFER_PREFIX, next_document_number
from .inventory_service import (
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    receive_into_stock,
    record_stock_out,
)
from .tenant_service import get_owned, require_branch, require_product


# Transfer status constants
TRANSFER_STATUS_REQUESTED = "REQUESTED"
TRANSFER_STATUS_APPROVED = "APPROVED"
TRANSFER_STATUS_SHIPPED = "SHIPPED"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_REJECTED = "REJECTED"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_REQUESTED,
    TRANSFER_STATUS_APPROVED,
    TRANSFER_STATUS_SHIPPED,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_REJECTED,
)

TRANSFER_PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")

REFERENCE_TYPE = "BRANCH_TRANSFER"


@dataclass(frozen=True)
class TransferFilter:
    status: str | None = None
    branch_id: str | None = None
    # "incoming", "outgoing", or None for either side
    direction: str | None = None
    limit: int = 100


def _locked_transfer(transfer_id: str, user_id: str) -> BranchTransfer:
    transfer = lock_for_update(
        BranchTransfer.query.filter_by(id=transfer_id, user_id=user_id)
    ).first()
    if transfer is None:
        raise NotFoundError("Transfer not found")
    return transfer


def create_branch_transfer(
    user_id: str,
    from_branch_id: str,
    to_branch_id: str,
    items: list,
    *,
    actor_id: str | None = None,
    priority: str = "NORMAL",
    reason: str | None = None,
    notes: str | None = None,
) -> BranchTransfer:
    """
    Create a transfer in REQUESTED status.

    Args:
        user_id: Tenant owning both branches
        from_branch_id: Source branch (must be active)
        to_branch_id: Destination branch (must be active, distinct from source)
        items: [{"productId": str, "quantity": int}], distinct products
        actor_id: Requesting user (defaults to the tenant)

    Returns:
        Created BranchTransfer with a TR-YYYY-NNN number

    Raises:
        ValidationError: Same branch, inactive branch, bad items, or the
            source has less available stock than requested
        NotFoundError: A branch or product is missing or foreign
    """
    if from_branch_id == to_branch_id:
        raise ValidationError("Source and destination branches must be different")
    if priority not in TRANSFER_PRIORITIES:
        raise ValidationError(f"Invalid priority: {priority}")

    source = require_branch(user_id, from_branch_id, active=True)
    destination = require_branch(user_id, to_branch_id, active=True)

    lines = []
    seen = set()
    for raw in coerce_list(items, "items"):
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        product = require_product(user_id, raw.get("productId"))
        if product.id in seen:
            raise ValidationError(f"Product {product.name} is listed more than once")
        seen.add(product.id)
        quantity = coerce_positive_int(raw.get("quantity", raw.get("requestedQuantity")), "quantity")

        level = StockLevel.query.filter_by(
            user_id=user_id, product_id=product.id, branch_id=source.id
        ).first()
        available = level.available_stock if level else 0
        if available < quantity:
            raise ValidationError(
                f"Insufficient stock for {product.name}: {available} available, {quantity} requested"
            )
        lines.append((product, quantity, raw.get("notes")))

    transfer = BranchTransfer(
        user_id=user_id,
        transfer_number=next_document_number(
            user_id=user_id, document_type="BRANCH_TRANSFER", prefix=TRANSFER_PREFIX
        ),
        from_branch_id=source.id,
        to_branch_id=destination.id,
        status=TRANSFER_STATUS_REQUESTED,
        priority=priority,
        reason=reason,
        notes=notes,
        requested_by=actor_id or user_id,
        requested_at=utcnow(),
    )
    for position, (product, quantity, line_notes) in enumerate(lines):
        transfer.items.append(BranchTransferItem(
            product_id=product.id,
            position=position,
            requested_quantity=quantity,
            notes=line_notes,
        ))
    db.session.add(transfer)
    db.session.flush()
    return transfer


def approve_stock_transfer(
    transfer_id: str,
    user_id: str,
    approvals: list | None = None,
    *,
    actor_id: str | None = None,
    approved: bool = True,
    rejection_reason: str | None = None,
    notes: str | None = None,
) -> BranchTransfer:
    """
    Approve a REQUESTED transfer, optionally with reduced quantities.

    Args:
        approvals: [{"productId": str, "approvedQuantity": int}]. Items not
            listed are approved at their requested quantity.
        approved: False rejects the transfer instead.

    Returns:
        Updated BranchTransfer

    Raises:
        StateConflictError: Transfer is not REQUESTED
        ValidationError: Unknown product, approved > requested, or nothing
            approved with a positive quantity
    """
    if not approved:
        return reject_stock_transfer(transfer_id, user_id, rejection_reason, actor_id=actor_id)
    approvals = coerce_list(approvals, "approvals", allow_empty=True) if approvals is not None else []

    def _op():
        transfer = _locked_transfer(transfer_id, user_id)
        if transfer.status != TRANSFER_STATUS_REQUESTED:
            raise StateConflictError(f"Cannot approve transfer in {transfer.status} status")

        approved_quantities = {item.product_id: item.requested_quantity for item in transfer.items}
        seen = set()
        for raw in approvals:
            if not isinstance(raw, dict):
                raise ValidationError("Each approval must be an object")
            product_id = raw.get("productId")
            item = transfer.item_for(product_id)
            if item is None:
                raise ValidationError(f"Product {product_id} is not part of this transfer")
            if product_id in seen:
                raise ValidationError(f"Product {product_id} is listed more than once")
            seen.add(product_id)
            quantity = coerce_non_negative_int(raw.get("approvedQuantity"), "approvedQuantity")
            if quantity > item.requested_quantity:
                raise ValidationError(
                    f"Approved quantity for product {product_id} cannot exceed "
                    f"requested quantity ({item.requested_quantity})"
                )
            approved_quantities[product_id] = quantity

        if not any(quantity > 0 for quantity in approved_quantities.values()):
            raise ValidationError("At least one item must be approved with a quantity greater than zero")

        for item in transfer.items:
            item.approved_quantity = approved_quantities[item.product_id]
        transfer.status = TRANSFER_STATUS_APPROVED
        transfer.approved_by = actor_id or user_id
        transfer.approved_at = utcnow()
        if notes:
            transfer.notes = notes
        db.session.flush()
        return transfer

    return run_with_retry(_op)


def reject_stock_transfer(
    transfer_id: str,
    user_id: str,
    reason: str | None = None,
    *,
    actor_id: str | None = None,
) -> BranchTransfer:
    """Reject a REQUESTED or APPROVED transfer. No stock has moved yet at either point."""
    def _op():
        transfer = _locked_transfer(transfer_id, user_id)
        if transfer.status not in (TRANSFER_STATUS_REQUESTED, TRANSFER_STATUS_APPROVED):
            raise StateConflictError(f"Cannot reject transfer in {transfer.status} status")
        transfer.status = TRANSFER_STATUS_REJECTED
        transfer.rejected_by = actor_id or user_id
        transfer.rejected_at = utcnow()
        transfer.rejection_reason = (reason or "").strip() or "No reason provided"
        db.session.flush()
        return transfer

    return run_with_retry(_op)


TRANSFER_UPDATE_ACTIONS = ("cancel",)


def update_branch_transfer(transfer_id: str, user_id: str, data: dict, *, actor_id: str | None = None) -> BranchTransfer:
    """
    Generic update entry point. Only `cancel` is accepted here; approval,
    shipping and receipt have their own operations.

    A cancelled transfer ends as REJECTED with the given reason.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    action = data.get("action")
    if action not in TRANSFER_UPDATE_ACTIONS:
        raise ValidationError("Invalid action. Use specific endpoints for approve, ship, or receive actions.")
    transfer = get_branch_transfer(transfer_id, user_id)
    if transfer.status not in (TRANSFER_STATUS_REQUESTED, TRANSFER_STATUS_APPROVED):
        raise StateConflictError("Only requested or approved transfers can be cancelled")
    return reject_stock_transfer(transfer_id, user_id, data.get("reason"), actor_id=actor_id)


def ship_branch_transfer(
    transfer_id: str,
    user_id: str,
    data: dict,
    *,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> BranchTransfer:
    """
    Ship an APPROVED transfer.

    Request data:
        shippedBy (required), trackingNumber?, estimatedArrival? (ISO-8601,
        strictly in the future), shippingNotes?

    Raises:
        ValidationError: Missing shippedBy, bad or past estimatedArrival, or
            the source no longer holds the approved quantity
        StateConflictError: Transfer is not APPROVED
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    shipped_by = data.get("shippedBy")
    if not isinstance(shipped_by, str) or not shipped_by.strip():
        raise ValidationError("shippedBy is required")
    estimated_arrival = coerce_datetime(data.get("estimatedArrival"), "estimated arrival date")
    now = now or utcnow()
    if estimated_arrival is not None and estimated_arrival <= now:
        raise ValidationError("Estimated arrival date must be in the future")

    def _op():
        transfer = _locked_transfer(transfer_id, user_id)
        if transfer.status != TRANSFER_STATUS_APPROVED:
            raise StateConflictError(f"Cannot ship transfer in {transfer.status} status")

        for item in transfer.items:
            quantity = item.approved_quantity or 0
            if quantity > 0:
                movement = record_stock_out(
                    user_id=user_id,
                    branch_id=transfer.from_branch_id,
                    product_id=item.product_id,
                    quantity=quantity,
                    movement_type=MOVEMENT_TRANSFER_OUT,
                    actor_id=actor_id or user_id,
                    reference_type=REFERENCE_TYPE,
                    reference_id=transfer.id,
                    notes=f"Transfer {transfer.transfer_number}",
                )
                item.unit_cost = movement.unit_cost
            item.shipped_quantity = quantity

        transfer.status = TRANSFER_STATUS_SHIPPED
        transfer.shipped_by = shipped_by.strip()
        transfer.shipped_at = now
        transfer.tracking_number = data.get("trackingNumber")
        transfer.estimated_arrival = estimated_arrival
        transfer.shipping_notes = data.get("shippingNotes")
        db.session.flush()
        return transfer

    return run_with_retry(_op)


def receive_stock_transfer(
    transfer_id: str,
    user_id: str,
    receipts: list | None = None,
    *,
    actor_id: str | None = None,
    notes: str | None = None,
) -> BranchTransfer:
    """
    Receive a SHIPPED transfer at the destination.

    Args:
        receipts: [{"productId": str, "receivedQuantity": int}]. None means
            everything arrived as shipped; otherwise unlisted items count as 0.

    Raises:
        StateConflictError: Transfer is not SHIPPED
        ValidationError: Unknown product or received > shipped
    """
    if receipts is not None:
        receipts = coerce_list(receipts, "items", allow_empty=True)

    def _op():
        transfer = _locked_transfer(transfer_id, user_id)
        if transfer.status != TRANSFER_STATUS_SHIPPED:
            raise StateConflictError(f"Cannot receive transfer in {transfer.status} status")

        if receipts is None:
            received = {item.product_id: item.shipped_quantity or 0 for item in transfer.items}
        else:
            received = {item.product_id: 0 for item in transfer.items}
            seen = set()
            for raw in receipts:
                if not isinstance(raw, dict):
                    raise ValidationError("Each item must be an object")
                product_id = raw.get("productId")
                item = transfer.item_for(product_id)
                if item is None:
                    raise ValidationError(f"Product {product_id} is not part of this transfer")
                if product_id in seen:
                    raise ValidationError(f"Product {product_id} is listed more than once")
                seen.add(product_id)
                quantity = coerce_non_negative_int(raw.get("receivedQuantity"), "receivedQuantity")
                if quantity > (item.shipped_quantity or 0):
                    raise ValidationError(
                        f"Received quantity for product {product_id} cannot exceed "
                        f"shipped quantity ({item.shipped_quantity or 0})"
                    )
                received[product_id] = quantity

        for item in transfer.items:
            quantity = received[item.product_id]
            item.received_quantity = quantity
            if quantity > 0:
                receive_into_stock(
                    user_id=user_id,
                    branch_id=transfer.to_branch_id,
                    product_id=item.product_id,
                    quantity=quantity,
                    movement_type=MOVEMENT_TRANSFER_IN,
                    actor_id=actor_id or user_id,
                    reference_type=REFERENCE_TYPE,
                    reference_id=transfer.id,
                    unit_cost=item.unit_cost,
                    notes=f"Transfer {transfer.transfer_number}",
                )

        transfer.status = TRANSFER_STATUS_RECEIVED
        transfer.received_by = actor_id or user_id
        transfer.received_at = utcnow()
        transfer.receiving_notes = notes
        db.session.flush()
        return transfer

    return run_with_retry(_op)


def get_branch_transfer(transfer_id: str, user_id: str) -> BranchTransfer:
    return get_owned(BranchTransfer, transfer_id, user_id, "Transfer")


def list_branch_transfers(user_id: str, filters: TransferFilter | None = None) -> list[BranchTransfer]:
    filters = filters or TransferFilter()
    query = BranchTransfer.query.filter_by(user_id=user_id)
    if filters.status:
        if filters.status not in TRANSFER_STATUSES:
            raise ValidationError(f"Invalid status: {filters.status}")
        query = query.filter_by(status=filters.status)
    if filters.branch_id:
        if filters.direction == "incoming":
            query = query.filter(BranchTransfer.to_branch_id == filters.branch_id)
        elif filters.direction == "outgoing":
            query = query.filter(BranchTransfer.from_branch_id == filters.branch_id)
        elif filters.direction is None:
            query = query.filter(
                (BranchTransfer.to_branch_id == filters.branch_id)
                | (BranchTransfer.from_branch_id == filters.branch_id)
            )
        else:
            raise ValidationError(f"Invalid direction: {filters.direction}")
    limit = min(max(filters.limit or 100, 1), 500)
    return query.order_by(BranchTransfer.created_at.desc()).limit(limit).all()


def get_in_transit_quantity(user_id: str, product_id: str, branch_id: str | None = None) -> int:
    """Units shipped but not yet received, optionally only those bound for one branch."""
    query = (
        db.session.query(func.coalesce(func.sum(BranchTransferItem.shipped_quantity), 0))
        .join(BranchTransfer, BranchTransfer.id == BranchTransferItem.transfer_id)
        .filter(
            BranchTransfer.user_id == user_id,
            BranchTransfer.status == TRANSFER_STATUS_SHIPPED,
            BranchTransferItem.product_id == product_id,
        )
    )
    if branch_id:
        query = query.filter(BranchTransfer.to_branch_id == branch_id)
    return int(query.scalar() or 0)
