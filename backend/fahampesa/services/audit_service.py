# Overview: Stock audits; snapshot system stock, then reconcile physical counts into the ledger.

from __future__ import annotations

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import StockAudit, StockAuditItem, StockLevel
from ..time_utils import utcnow
from ..validation import coerce_list, coerce_non_negative_int
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import MOVEMENT_AUDIT_ADJUSTMENT, apply_movement, locked_stock_level
from .tenant_service import get_owned, require_branch, require_product


AUDIT_PLANNED = "PLANNED"
AUDIT_IN_PROGRESS = "IN_PROGRESS"
AUDIT_COMPLETED = "COMPLETED"
AUDIT_CANCELLED = "CANCELLED"

AUDIT_TYPES = {"FULL", "CYCLE", "SPOT"}

# COMPLETED is reached only through reconcile_audit
ALLOWED_STATUS_CHANGES = {
    AUDIT_PLANNED: {AUDIT_IN_PROGRESS, AUDIT_CANCELLED},
    AUDIT_IN_PROGRESS: {AUDIT_CANCELLED},
}


def create_stock_audit(
    user_id: str,
    branch_id: str,
    audit_type: str = "FULL",
    product_ids: list | None = None,
    notes: str | None = None,
    actor_id: str | None = None,
) -> StockAudit:
    """
    Plan an audit and snapshot current system stock for each product.

    FULL audits cover every stock level at the branch; CYCLE and SPOT audits
    cover the listed product_ids (products with no stock record count as 0).
    """
    branch = require_branch(user_id, branch_id)
    if audit_type not in AUDIT_TYPES:
        raise ValidationError(f"Invalid auditType: {audit_type}")

    snapshot = {}
    if product_ids:
        for product_id in product_ids:
            product = require_product(user_id, product_id)
            level = StockLevel.query.filter_by(product_id=product.id, branch_id=branch.id).first()
            cost = product.cost_price or 0
            if level is not None:
                cost = level.average_cost_price or cost
            snapshot[product.id] = (level.current_stock if level else 0, cost)
    else:
        if audit_type != "FULL":
            raise ValidationError("productIds is required for CYCLE and SPOT audits")
        for level in StockLevel.query.filter_by(user_id=user_id, branch_id=branch.id).all():
            snapshot[level.product_id] = (level.current_stock, level.average_cost_price or 0)

    if not snapshot:
        raise ValidationError("No products to audit at this branch")

    audit = StockAudit(
        user_id=user_id,
        branch_id=branch.id,
        audit_type=audit_type,
        status=AUDIT_PLANNED,
        notes=notes,
        planned_by=actor_id or user_id,
        total_products=len(snapshot),
        products_with_discrepancy=0,
        total_discrepancy_value=0,
    )
    for product_id, (system_stock, cost) in snapshot.items():
        audit.items.append(StockAuditItem(
            product_id=product_id,
            system_stock=system_stock,
            unit_cost_price=cost,
            is_reconciled=False,
        ))
    db.session.add(audit)
    db.session.flush()
    return audit


def get_stock_audit(audit_id: str, user_id: str) -> StockAudit:
    return get_owned(StockAudit, audit_id, user_id, "Stock audit")


def get_stock_audits(user_id: str, branch_id: str | None = None, status: str | None = None) -> list[StockAudit]:
    query = StockAudit.query.filter_by(user_id=user_id)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(StockAudit.created_at.desc()).all()


def update_stock_audit_status(audit_id: str, user_id: str, status: str) -> StockAudit:
    def _op():
        audit = lock_for_update(StockAudit.query.filter_by(id=audit_id, user_id=user_id)).first()
        if audit is None:
            raise NotFoundError("Stock audit not found")
        if status not in ALLOWED_STATUS_CHANGES.get(audit.status, set()):
            raise StateConflictError(f"Cannot move audit from {audit.status} to {status}")
        audit.status = status
        if status == AUDIT_IN_PROGRESS:
            audit.started_at = utcnow()
        db.session.flush()
        return audit

    return run_with_retry(_op)


def reconcile_audit(user_id: str, data: dict, actor_id: str | None = None) -> StockAudit:
    """
    Apply physical counts to the ledger and complete the audit.

    Every item is validated before anything is written. For each counted
    product the stock level is set to the physical count through an
    AUDIT_ADJUSTMENT movement (skipped when there is no difference), and the
    audit item records the discrepancy against the snapshot.

    The movement quantity is physical - live stock, not the snapshot
    discrepancy: sales and receipts posted between the snapshot and the
    count already moved the level, so applying the snapshot difference would
    count them twice. The snapshot discrepancy is kept in the movement notes.

    Request data:
        {"auditId": str, "items": [{"productId", "physicalStock", "notes"?}]}

    Raises:
        NotFoundError: audit missing or foreign.
        StateConflictError: audit already completed or cancelled.
        ValidationError: unknown product for this audit, negative count, etc.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    audit_id = data.get("auditId")
    if not audit_id:
        raise ValidationError("auditId is required")
    raw_items = coerce_list(data.get("items"), "items")
    actor_id = actor_id or user_id

    def _op():
        audit = lock_for_update(StockAudit.query.filter_by(id=audit_id, user_id=user_id)).first()
        if audit is None:
            raise NotFoundError("Stock audit not found")
        if audit.status not in (AUDIT_PLANNED, AUDIT_IN_PROGRESS):
            raise StateConflictError(f"Cannot reconcile audit in {audit.status} status")

        audit_items = {item.product_id: item for item in audit.items}
        counts = []
        seen = set()
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object")
            product_id = raw.get("productId")
            if product_id not in audit_items:
                raise ValidationError(f"Product {product_id} is not part of this audit")
            if product_id in seen:
                raise ValidationError(f"Product {product_id} is listed more than once")
            seen.add(product_id)
            physical = coerce_non_negative_int(raw.get("physicalStock"), "physicalStock")
            counts.append((audit_items[product_id], physical, raw.get("notes")))

        now = utcnow()
        for item, physical, notes in counts:
            item.physical_stock = physical
            item.discrepancy = physical - item.system_stock
            item.discrepancy_value = round(item.discrepancy * (item.unit_cost_price or 0), 2)
            item.is_reconciled = True
            item.notes = notes

            level = locked_stock_level(user_id, item.product_id, audit.branch_id)
            if level is None:
                level = StockLevel(
                    user_id=user_id,
                    product_id=item.product_id,
                    branch_id=audit.branch_id,
                    current_stock=0,
                    reserved_stock=0,
                    reorder_point=0,
                    reorder_quantity=0,
                    average_cost_price=item.unit_cost_price or 0,
                )
                db.session.add(level)

            delta = physical - (level.current_stock or 0)
            if delta != 0:
                summary = (
                    f"Counted {physical}, snapshot {item.system_stock}, "
                    f"discrepancy {item.discrepancy:+d}"
                )
                apply_movement(
                    level,
                    delta,
                    MOVEMENT_AUDIT_ADJUSTMENT,
                    actor_id,
                    reason="Stock audit reconciliation",
                    notes=f"{summary}. {notes}" if notes else summary,
                    reference_type="STOCK_AUDIT",
                    reference_id=audit.id,
                    unit_cost=item.unit_cost_price,
                )
            level.last_count_date = now
            level.last_count_stock = physical
            level.last_count_user_id = actor_id

        discrepant = [item for item in audit.items if item.is_reconciled and item.discrepancy]
        audit.products_with_discrepancy = len(discrepant)
        audit.total_discrepancy_value = round(sum(item.discrepancy_value or 0 for item in discrepant), 2)
        audit.status = AUDIT_COMPLETED
        audit.completed_by = actor_id
        audit.completed_at = now
        db.session.flush()
        return audit

    return run_with_retry(_op)
