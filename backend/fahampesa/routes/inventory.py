# backend/fahampesa/routes/inventory.py
"""
Inventory ledger routes.

SECURITY:
- View operations require inventory:read
- Initialization and adjustments require inventory:adjust
- Audits require inventory:audit
Staff are limited to their assigned branches.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- endDate filtering is exclusive: created_at < endDate.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, audit_service, inventory_service
from ..services.concurrency import commit_with_retry
from ..services.inventory_service import MovementFilter
from ..validation import coerce_datetime, coerce_int, split_csv


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

# Older clients post adjustments to /api/stock/adjust
stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _error(e, action):
    db.session.rollback()
    if isinstance(e, FahamPesaError):
        body, status = error_response(e)
        return jsonify(body), status
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"success": False, "error": f"Failed to {action}"}), 500


@inventory_bp.post("/initialize")
@require_access("inventory:adjust")
def initialize_inventory(access):
    """
    Request body:
    {
        "userId": str,
        "branchId": str,
        "items": [{"productId", "initialStock", "reorderPoint"?, "reorderQuantity"?,
                   "maxStockLevel"?, "costPrice"?}]
    }

    Returns:
        200: {"success": true, "initialized": n, "failed": m, "errors": [...]}
    """
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_branch_access(access, data.get("branchId"))
        result = commit_with_retry(lambda: inventory_service.initialize_inventory(
            access.tenant_id, data.get("branchId"), data.get("items"), actor_id=access.user_id
        ))
        return jsonify({"success": True, **result}), 200
    except Exception as e:
        return _error(e, "initialize inventory")


@inventory_bp.get("/stock")
@require_access("inventory:read")
def get_stock_levels(access):
    """
    Query params:
        userId, branchId (optional), productIds (optional, comma separated)
    """
    try:
        branch_id = request.args.get("branchId")
        if branch_id:
            access_service.require_branch_access(access, branch_id)
        levels = inventory_service.get_stock_levels(
            access.tenant_id, branch_id, split_csv(request.args.get("productIds"))
        )
        levels = [l for l in levels if access_service.can_access_branch(access, l.branch_id)]
        return jsonify({"success": True, "stockLevels": [l.to_dict() for l in levels]}), 200
    except Exception as e:
        return _error(e, "load stock levels")


@inventory_bp.get("/stock/<branch_id>/<product_id>")
@require_access("inventory:read")
def get_stock_level(branch_id, product_id, access):
    try:
        access_service.require_branch_access(access, branch_id)
        level = inventory_service.get_stock_level(product_id, branch_id, access.tenant_id)
        if level is None:
            return jsonify({"success": False, "error": "Stock record not found"}), 404
        return jsonify({"success": True, "stockLevel": level.to_dict()}), 200
    except Exception as e:
        return _error(e, "load stock level")


def _adjust(access):
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_branch_access(access, data.get("branchId"))
        result = commit_with_retry(
            lambda: inventory_service.adjust_stock(access.tenant_id, data, actor_id=access.user_id)
        )
        return jsonify({"success": True, **result}), 200
    except Exception as e:
        return _error(e, "adjust stock")


@inventory_bp.post("/stock/adjust")
@require_access("inventory:adjust")
def adjust_stock(access):
    """
    Request body:
    {
        "userId": str,
        "productId": str,
        "branchId": str,
        "quantity": int (signed, non-zero),
        "reason": str,
        "notes": str (optional)
    }

    Returns:
        200: {"success": true, "stockLevel": {...}, "movement": {...}}
        400: Invalid input or insufficient stock
        404: No stock record for the product at the branch
    """
    return _adjust(access)


@stock_bp.post("/adjust")
@require_access("inventory:adjust")
def adjust_stock_legacy(access):
    return _adjust(access)


@inventory_bp.get("/movements")
@require_access("inventory:read")
def get_movements(access):
    """
    Query params:
        userId, branchId?, productId?, movementType?, startDate?, endDate?, limit?, offset?
    """
    try:
        args = request.args
        if args.get("branchId"):
            access_service.require_branch_access(access, args.get("branchId"))
        filters = MovementFilter(
            branch_id=args.get("branchId"),
            product_id=args.get("productId"),
            movement_type=args.get("movementType"),
            start_date=coerce_datetime(args.get("startDate"), "startDate"),
            end_date=coerce_datetime(args.get("endDate"), "endDate"),
            limit=coerce_int(args.get("limit", 50), "limit"),
            offset=coerce_int(args.get("offset", 0), "offset"),
        )
        result = inventory_service.get_stock_movements(access.tenant_id, filters)
        return jsonify({"success": True, **result}), 200
    except Exception as e:
        return _error(e, "load stock movements")


@inventory_bp.get("/alerts")
@require_access("inventory:read")
def get_alerts(access):
    try:
        branch_id = request.args.get("branchId")
        if branch_id:
            access_service.require_branch_access(access, branch_id)
        low_stock = inventory_service.get_low_stock_alerts(access.tenant_id, branch_id)
        expiry = inventory_service.get_expiry_alerts(access.tenant_id, branch_id)
        return jsonify({
            "success": True,
            "lowStockAlerts": [a.to_dict() for a in low_stock if access_service.can_access_branch(access, a.branch_id)],
            "expiryAlerts": [a.to_dict() for a in expiry if access_service.can_access_branch(access, a.branch_id)],
        }), 200
    except Exception as e:
        return _error(e, "load alerts")


@inventory_bp.post("/alerts/generate")
@require_access("inventory:read")
def generate_alerts(access):
    """Request body: {"userId": str, "branchId": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        branch_id = data.get("branchId")
        if branch_id:
            access_service.require_branch_access(access, branch_id)
        alerts = commit_with_retry(
            lambda: inventory_service.generate_low_stock_alerts(access.tenant_id, branch_id)
        )
        alerts = [a for a in alerts if access_service.can_access_branch(access, a.branch_id)]
        return jsonify({
            "success": True,
            "alertCount": len(alerts),
            "alerts": [a.to_dict() for a in alerts],
        }), 200
    except Exception as e:
        return _error(e, "generate alerts")


@inventory_bp.post("/alerts/expiry")
@require_access("inventory:adjust")
def create_expiry_alert(access):
    """Request body: {"userId", "productId", "branchId", "expiryDate", "quantity"?, "batchNumber"?}"""
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_branch_access(access, data.get("branchId"))
        alert = commit_with_retry(lambda: inventory_service.create_expiry_alert(access.tenant_id, data))
        return jsonify({"success": True, "alert": alert.to_dict()}), 201
    except Exception as e:
        return _error(e, "create expiry alert")


@inventory_bp.post("/alerts/<alert_id>/acknowledge")
@require_access("inventory:read")
def acknowledge_alert(alert_id, access):
    """Request body: {"userId": str, "alertType": "low_stock" | "expiry"}"""
    data = request.get_json(silent=True) or {}
    alert_type = data.get("alertType", "low_stock")
    try:
        alert = inventory_service.get_alert(alert_id, access.tenant_id, alert_type)
        access_service.require_branch_access(access, alert.branch_id)
        alert = commit_with_retry(lambda: inventory_service.acknowledge_alert(
            alert_id, access.tenant_id, alert_type, actor_id=access.user_id
        ))
        return jsonify({"success": True, "alert": alert.to_dict()}), 200
    except Exception as e:
        return _error(e, "acknowledge alert")


@inventory_bp.get("/audits")
@require_access("inventory:audit")
def list_audits(access):
    try:
        branch_id = request.args.get("branchId")
        if branch_id:
            access_service.require_branch_access(access, branch_id)
        audits = audit_service.get_stock_audits(access.tenant_id, branch_id, request.args.get("status"))
        audits = [a for a in audits if access_service.can_access_branch(access, a.branch_id)]
        return jsonify({"success": True, "audits": [a.to_dict() for a in audits]}), 200
    except Exception as e:
        return _error(e, "load stock audits")


@inventory_bp.post("/audits")
@require_access("inventory:audit")
def create_audit(access):
    """
    Request body:
    {
        "userId": str,
        "branchId": str,
        "auditType": "FULL" | "CYCLE" | "SPOT",
        "productIds": [str] (required unless FULL),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_branch_access(access, data.get("branchId"))
        audit = commit_with_retry(lambda: audit_service.create_stock_audit(
            access.tenant_id,
            data.get("branchId"),
            data.get("auditType", "FULL"),
            data.get("productIds"),
            data.get("notes"),
            actor_id=access.user_id,
        ))
        return jsonify({"success": True, "audit": audit.to_dict()}), 201
    except Exception as e:
        return _error(e, "create stock audit")


@inventory_bp.post("/audits/<audit_id>/status")
@require_access("inventory:audit")
def update_audit_status(audit_id, access):
    """Request body: {"userId": str, "status": "IN_PROGRESS" | "CANCELLED"}"""
    data = request.get_json(silent=True) or {}
    try:
        audit = audit_service.get_stock_audit(audit_id, access.tenant_id)
        access_service.require_branch_access(access, audit.branch_id)
        audit = commit_with_retry(
            lambda: audit_service.update_stock_audit_status(audit_id, access.tenant_id, data.get("status"))
        )
        return jsonify({"success": True, "audit": audit.to_dict()}), 200
    except Exception as e:
        return _error(e, "update stock audit")


@inventory_bp.post("/audits/reconcile")
@require_access("inventory:audit")
def reconcile_audit(access):
    """
    Request body:
    {
        "userId": str,
        "auditId": str,
        "items": [{"productId": str, "physicalStock": int, "notes": str (optional)}]
    }

    All-or-nothing: any invalid item fails the whole reconciliation.
    """
    data = request.get_json(silent=True) or {}
    try:
        if data.get("auditId"):
            audit = audit_service.get_stock_audit(data["auditId"], access.tenant_id)
            access_service.require_branch_access(access, audit.branch_id)
        audit = commit_with_retry(
            lambda: audit_service.reconcile_audit(access.tenant_id, data, actor_id=access.user_id)
        )
        return jsonify({"success": True, "audit": audit.to_dict()}), 200
    except Exception as e:
        return _error(e, "reconcile stock audit")


@inventory_bp.get("/dashboard")
@require_access("inventory:read")
def dashboard(access):
    try:
        branch_id = request.args.get("branchId")
        if branch_id:
            access_service.require_branch_access(access, branch_id)
        data = inventory_service.get_inventory_dashboard(access.tenant_id, branch_id)
        return jsonify({"success": True, "dashboard": data}), 200
    except Exception as e:
        return _error(e, "load inventory dashboard")
