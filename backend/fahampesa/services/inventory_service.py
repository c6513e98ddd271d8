# Overview: Inventory ledger operations; stock levels, movements, alerts and stock reports.

"""
Inventory ledger.

Every change to StockLevel.current_stock goes through apply_movement, which
writes the matching StockMovement in the same transaction. Callers that
move stock for a document (transfers, purchase orders, audits, sales) use
receive_into_stock / record_stock_out so the ledger stays the single writer.

INVARIANTS:
- movement.new_stock == movement.previous_stock + movement.quantity
- current_stock never drops below zero or below reserved_stock
- a failed adjustment writes nothing
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Branch,
    BranchTransfer,
    ExpiryAlert,
    LowStockAlert,
    Product,
    StockLevel,
    StockMovement,
)
from ..time_utils import utcnow
from ..validation import coerce_amount, coerce_datetime, coerce_int, coerce_non_negative_int
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import get_owned, require_branch, require_product


MOVEMENT_INITIAL = "INITIAL"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_SALE = "SALE"
MOVEMENT_AUDIT_ADJUSTMENT = "AUDIT_ADJUSTMENT"
MOVEMENT_PURCHASE_RECEIPT = "PURCHASE_RECEIPT"

MOVEMENT_TYPES = {
    MOVEMENT_INITIAL,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_SALE,
    MOVEMENT_AUDIT_ADJUSTMENT,
    MOVEMENT_PURCHASE_RECEIPT,
}

ALERT_TYPE_LOW_STOCK = "low_stock"
ALERT_TYPE_EXPIRY = "expiry"
ALERT_TYPES = {ALERT_TYPE_LOW_STOCK, ALERT_TYPE_EXPIRY}

DEFAULT_MOVEMENT_LIMIT = 50
MAX_MOVEMENT_LIMIT = 500


@dataclass(frozen=True)
class MovementFilter:
    """Optional criteria for get_stock_movements. Dates are UTC-naive, end exclusive."""
    branch_id: str | None = None
    product_id: str | None = None
    movement_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = DEFAULT_MOVEMENT_LIMIT
    offset: int = 0


# =============================================================================
# LEDGER PRIMITIVES
# =============================================================================

def locked_stock_level(user_id: str, product_id: str, branch_id: str) -> StockLevel | None:
    return lock_for_update(
        StockLevel.query.filter_by(user_id=user_id, product_id=product_id, branch_id=branch_id)
    ).first()


def apply_movement(
    level: StockLevel,
    delta: int,
    movement_type: str,
    actor_id: str,
    *,
    reason: str | None = None,
    notes: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    unit_cost: float | None = None,
) -> StockMovement:
    previous = level.current_stock or 0
    new_stock = previous + delta
    if new_stock < 0:
        raise ValidationError(
            f"Insufficient stock: {previous} on hand, cannot remove {abs(delta)}"
        )
    if new_stock < (level.reserved_stock or 0):
        raise ValidationError(
            f"Insufficient stock: {level.reserved_stock} units are reserved"
        )

    level.current_stock = new_stock
    movement = StockMovement(
        user_id=level.user_id,
        product_id=level.product_id,
        branch_id=level.branch_id,
        movement_type=movement_type,
        quantity=delta,
        previous_stock=previous,
        new_stock=new_stock,
        unit_cost=unit_cost,
        reason=reason,
        notes=notes,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=actor_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def receive_into_stock(
    *,
    user_id: str,
    branch_id: str,
    product_id: str,
    quantity: int,
    movement_type: str,
    actor_id: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    unit_cost: float | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Increment stock at a branch, creating the StockLevel if the branch has
    never held the product. A unit_cost updates the weighted average cost.

    Does not flush; the caller owns the transaction.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero")

    level = locked_stock_level(user_id, product_id, branch_id)
    if level is None:
        level = StockLevel(
            user_id=user_id,
            product_id=product_id,
            branch_id=branch_id,
            current_stock=0,
            reserved_stock=0,
            reorder_point=0,
            reorder_quantity=0,
            average_cost_price=unit_cost or 0,
        )
        db.session.add(level)
    elif unit_cost is not None and level.current_stock + quantity > 0:
        on_hand_value = (level.current_stock or 0) * (level.average_cost_price or 0)
        level.average_cost_price = round(
            (on_hand_value + quantity * unit_cost) / (level.current_stock + quantity), 2
        )

    return apply_movement(
        level,
        quantity,
        movement_type,
        actor_id,
        notes=notes,
        reference_type=reference_type,
        reference_id=reference_id,
        unit_cost=unit_cost,
    )


def record_stock_out(
    *,
    user_id: str,
    branch_id: str,
    product_id: str,
    quantity: int,
    movement_type: str,
    actor_id: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Decrement stock at a branch. Fails when the branch holds too little."""
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero")

    level = locked_stock_level(user_id, product_id, branch_id)
    if level is None:
        raise ValidationError(f"No stock record for product {product_id} at this branch")
    return apply_movement(
        level,
        -quantity,
        movement_type,
        actor_id,
        notes=notes,
        reference_type=reference_type,
        reference_id=reference_id,
        unit_cost=level.average_cost_price,
    )


# =============================================================================
# STOCK LEVELS
# =============================================================================

def initialize_inventory(user_id: str, branch_id: str, items: list, actor_id: str | None = None) -> dict:
    """
    Create opening stock levels for a branch.

    Each item is handled on its own: an invalid or duplicate item is reported
    in `errors` and the rest still initialize.

    Args:
        user_id: Tenant.
        branch_id: Target branch (must belong to the tenant).
        items: [{productId, initialStock, reorderPoint?, reorderQuantity?,
                 maxStockLevel?, costPrice?}]

    Returns:
        {"initialized": int, "failed": int, "errors": [...], "stockLevels": [...]}
    """
    branch = require_branch(user_id, branch_id)
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    actor_id = actor_id or user_id
    created = []
    errors = []
    seen = set()

    for index, item in enumerate(items):
        product_id = item.get("productId") if isinstance(item, dict) else None
        try:
            if not isinstance(item, dict):
                raise ValidationError("item must be an object")
            if product_id in seen:
                raise ValidationError("Duplicate product in request")
            product = require_product(user_id, product_id)
            initial_stock = coerce_non_negative_int(item.get("initialStock", 0), "initialStock")
            reorder_point = coerce_non_negative_int(item.get("reorderPoint", 0), "reorderPoint")
            reorder_quantity = coerce_non_negative_int(item.get("reorderQuantity", 0), "reorderQuantity")
            max_stock = item.get("maxStockLevel")
            if max_stock is not None:
                max_stock = coerce_non_negative_int(max_stock, "maxStockLevel")
            cost_price = item.get("costPrice")
            cost_price = coerce_amount(cost_price, "costPrice") if cost_price is not None else (product.cost_price or 0)

            existing = StockLevel.query.filter_by(product_id=product.id, branch_id=branch.id).first()
            if existing is not None:
                raise ValidationError("Stock already initialized for this product at this branch")
        except (ValidationError, NotFoundError) as exc:
            errors.append({"index": index, "productId": product_id, "error": str(exc)})
            continue

        seen.add(product_id)
        level = StockLevel(
            user_id=user_id,
            product_id=product.id,
            branch_id=branch.id,
            current_stock=0,
            reserved_stock=0,
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            max_stock_level=max_stock,
            average_cost_price=cost_price,
        )
        db.session.add(level)
        apply_movement(
            level,
            initial_stock,
            MOVEMENT_INITIAL,
            actor_id,
            reason="Initial stock",
            unit_cost=cost_price,
        )
        created.append(level)

    db.session.flush()
    return {
        "initialized": len(created),
        "failed": len(errors),
        "errors": errors,
        "stockLevels": [level.to_dict() for level in created],
    }


def get_stock_level(product_id: str, branch_id: str, user_id: str | None = None) -> StockLevel | None:
    """Single stock level, or None. With user_id, a foreign row reads as absent."""
    query = StockLevel.query.filter_by(product_id=product_id, branch_id=branch_id)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.first()


def get_stock_levels(user_id: str, branch_id: str | None = None, product_ids: list | None = None) -> list[StockLevel]:
    query = StockLevel.query.filter_by(user_id=user_id)
    if branch_id:
        require_branch(user_id, branch_id)
        query = query.filter_by(branch_id=branch_id)
    if product_ids:
        query = query.filter(StockLevel.product_id.in_(product_ids))
    return query.order_by(StockLevel.branch_id, StockLevel.product_id).all()


def adjust_stock(user_id: str, data: dict, actor_id: str | None = None) -> dict:
    """
    Apply a signed manual adjustment to one stock level.

    Request data:
        productId, branchId, quantity (non-zero int, signed), reason, notes?

    Returns:
        {"stockLevel": ..., "movement": ...}

    Raises:
        ValidationError: bad input, or the adjustment would take stock below
            zero (nothing is written).
        NotFoundError: no stock record for the product at the branch (or it
            belongs to another tenant).
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    product_id = data.get("productId")
    branch_id = data.get("branchId")
    if not product_id:
        raise ValidationError("productId is required")
    if not branch_id:
        raise ValidationError("branchId is required")
    quantity = coerce_int(data.get("quantity"), "quantity")
    if quantity == 0:
        raise ValidationError("quantity must not be zero")
    reason = data.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")
    notes = data.get("notes")
    actor_id = actor_id or user_id

    def _op():
        level = locked_stock_level(user_id, product_id, branch_id)
        if level is None:
            raise NotFoundError("Stock record not found")
        movement = apply_movement(
            level,
            quantity,
            MOVEMENT_ADJUSTMENT,
            actor_id,
            reason=reason.strip(),
            notes=notes,
            unit_cost=level.average_cost_price,
        )
        db.session.flush()
        return {"stockLevel": level.to_dict(), "movement": movement.to_dict()}

    return run_with_retry(_op)


def get_stock_movements(user_id: str, filters: MovementFilter | None = None) -> dict:
    """
    Movement history, newest first.

    Returns:
        {"movements": [...], "totalCount": int, "hasMore": bool}
    """
    filters = filters or MovementFilter()
    if filters.movement_type and filters.movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movementType: {filters.movement_type}")
    limit = filters.limit if filters.limit and filters.limit > 0 else DEFAULT_MOVEMENT_LIMIT
    limit = min(limit, MAX_MOVEMENT_LIMIT)
    offset = max(filters.offset or 0, 0)

    query = StockMovement.query.filter_by(user_id=user_id)
    if filters.branch_id:
        query = query.filter_by(branch_id=filters.branch_id)
    if filters.product_id:
        query = query.filter_by(product_id=filters.product_id)
    if filters.movement_type:
        query = query.filter_by(movement_type=filters.movement_type)
    if filters.start_date:
        query = query.filter(StockMovement.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(StockMovement.created_at < filters.end_date)

    total = query.count()
    movements = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "movements": [m.to_dict() for m in movements],
        "totalCount": total,
        "hasMore": offset + len(movements) < total,
    }


# =============================================================================
# ALERTS
# =============================================================================

def generate_low_stock_alerts(user_id: str, branch_id: str | None = None) -> list[LowStockAlert]:
    """
    Bring low-stock alerts in line with current stock.

    A level is low when current_stock <= reorder_point. An existing active
    alert for the same (product, branch) is refreshed rather than
    duplicated, and active alerts whose level has recovered are resolved.
    Running it twice in a row gives the same set of active alerts.

    Returns:
        The active alerts in scope after the run.
    """
    if branch_id:
        require_branch(user_id, branch_id)
    now = utcnow()

    level_query = StockLevel.query.filter_by(user_id=user_id)
    alert_query = LowStockAlert.query.filter_by(user_id=user_id, is_active=True)
    if branch_id:
        level_query = level_query.filter_by(branch_id=branch_id)
        alert_query = alert_query.filter_by(branch_id=branch_id)

    active = {(a.product_id, a.branch_id): a for a in alert_query.all()}
    result = []

    for level in level_query.all():
        key = (level.product_id, level.branch_id)
        alert = active.pop(key, None)
        if level.current_stock <= level.reorder_point:
            shortage = max(level.reorder_point - level.current_stock, 0)
            if alert is None:
                alert = LowStockAlert(
                    user_id=user_id,
                    product_id=level.product_id,
                    branch_id=level.branch_id,
                    current_stock=level.current_stock,
                    reorder_point=level.reorder_point,
                    shortage=shortage,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
                db.session.add(alert)
            elif (alert.current_stock, alert.reorder_point, alert.shortage) != (
                level.current_stock, level.reorder_point, shortage
            ):
                alert.current_stock = level.current_stock
                alert.reorder_point = level.reorder_point
                alert.shortage = shortage
            result.append(alert)
        elif alert is not None:
            alert.is_active = False
            alert.resolved_at = now

    # Alerts with no stock level left in scope
    for alert in active.values():
        alert.is_active = False
        alert.resolved_at = now

    db.session.flush()
    return result


def get_low_stock_alerts(user_id: str, branch_id: str | None = None) -> list[LowStockAlert]:
    query = LowStockAlert.query.filter_by(user_id=user_id, is_active=True)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    return query.order_by(LowStockAlert.shortage.desc(), LowStockAlert.created_at).all()


def get_expiry_alerts(user_id: str, branch_id: str | None = None) -> list[ExpiryAlert]:
    query = ExpiryAlert.query.filter_by(user_id=user_id, is_active=True)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    return query.order_by(ExpiryAlert.expiry_date).all()


def create_expiry_alert(user_id: str, data: dict) -> ExpiryAlert:
    """Record a batch nearing expiry at a branch."""
    branch = require_branch(user_id, data.get("branchId"))
    product = require_product(user_id, data.get("productId"))
    expiry_date = coerce_datetime(data.get("expiryDate"), "expiryDate")
    if expiry_date is None:
        raise ValidationError("expiryDate is required")
    alert = ExpiryAlert(
        user_id=user_id,
        product_id=product.id,
        branch_id=branch.id,
        batch_number=data.get("batchNumber"),
        expiry_date=expiry_date,
        quantity=coerce_non_negative_int(data.get("quantity", 0), "quantity"),
        is_active=True,
    )
    db.session.add(alert)
    db.session.flush()
    return alert


def get_alert(alert_id: str, user_id: str, alert_type: str):
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"Invalid alert type: {alert_type}")
    model = LowStockAlert if alert_type == ALERT_TYPE_LOW_STOCK else ExpiryAlert
    return get_owned(model, alert_id, user_id, "Alert")


def acknowledge_alert(alert_id: str, user_id: str, alert_type: str, actor_id: str | None = None):
    """
    Mark an alert as seen and resolve it.

    A low-stock level that is still at or below its reorder point is flagged
    again by the next generate_low_stock_alerts run.

    Raises:
        ValidationError: alert_type is not low_stock or expiry.
        NotFoundError: no such alert for the tenant.
    """
    alert = get_alert(alert_id, user_id, alert_type)

    now = utcnow()
    alert.acknowledged_by = actor_id or user_id
    alert.acknowledged_at = now
    alert.is_active = False
    alert.resolved_at = now
    db.session.flush()
    return alert


# =============================================================================
# REPORTS
# =============================================================================

def get_inventory_dashboard(user_id: str, branch_id: str | None = None) -> dict:
    """Headline numbers for the inventory screen, optionally for one branch."""
    if branch_id:
        require_branch(user_id, branch_id)

    levels = get_stock_levels(user_id, branch_id)
    total_units = sum(level.current_stock for level in levels)
    total_value = round(sum(level.current_stock * (level.average_cost_price or 0) for level in levels), 2)
    low_stock = [level for level in levels if level.current_stock > 0 and level.is_low_stock]
    out_of_stock = [level for level in levels if level.current_stock == 0]

    transfer_query = BranchTransfer.query.filter(
        BranchTransfer.user_id == user_id,
        BranchTransfer.status.in_(("REQUESTED", "APPROVED", "SHIPPED")),
    )
    incoming = outgoing = None
    if branch_id:
        incoming = transfer_query.filter(BranchTransfer.to_branch_id == branch_id).count()
        outgoing = transfer_query.filter(BranchTransfer.from_branch_id == branch_id).count()
    open_transfers = transfer_query.count()

    recent = get_stock_movements(user_id, MovementFilter(branch_id=branch_id, limit=10))

    return {
        "branchId": branch_id,
        "totalProducts": len(levels),
        "totalStockUnits": total_units,
        "totalStockValue": total_value,
        "lowStockCount": len(low_stock),
        "outOfStockCount": len(out_of_stock),
        "activeAlerts": len(get_low_stock_alerts(user_id, branch_id)),
        "openTransfers": open_transfers,
        "incomingTransfers": incoming,
        "outgoingTransfers": outgoing,
        "recentMovements": recent["movements"],
    }


def get_inventory_value(user_id: str, branch_id: str | None = None) -> dict:
    """Stock value at average cost, per branch and in total."""
    if branch_id:
        require_branch(user_id, branch_id)

    value_expr = func.sum(StockLevel.current_stock * StockLevel.average_cost_price)
    query = (
        db.session.query(
            Branch.id,
            Branch.name,
            value_expr,
            func.sum(StockLevel.current_stock),
            func.count(StockLevel.id),
        )
        .join(StockLevel, StockLevel.branch_id == Branch.id)
        .filter(StockLevel.user_id == user_id, Branch.user_id == user_id)
        .group_by(Branch.id, Branch.name)
        .order_by(Branch.name)
    )
    if branch_id:
        query = query.filter(Branch.id == branch_id)

    branches = []
    for bid, name, value, units, count in query.all():
        branches.append({
            "branchId": bid,
            "branchName": name,
            "totalValue": round(float(value or 0), 2),
            "totalUnits": int(units or 0),
            "productCount": int(count or 0),
        })

    return {
        "branches": branches,
        "totalValue": round(sum(b["totalValue"] for b in branches), 2),
        "totalUnits": sum(b["totalUnits"] for b in branches),
        "productCount": db.session.query(func.count(Product.id)).filter(Product.user_id == user_id).scalar() or 0,
    }
