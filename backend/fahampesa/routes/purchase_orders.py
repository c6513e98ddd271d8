# backend/fahampesa/routes/purchase_orders.py
"""
Supplier and purchase order routes.

SECURITY:
- suppliers:manage for suppliers (creation limited by plan)
- purchase_orders:create to draft, submit and view
- purchase_orders:approve / :send / :receive for the later steps
The approver must not be the user who raised the order. Staff only see and act
on orders for their assigned branches.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, purchase_order_service
from ..services.concurrency import commit_with_retry


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _error(e, action):
    db.session.rollback()
    if isinstance(e, FahamPesaError):
        body, status = error_response(e)
        return jsonify(body), status
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"success": False, "error": f"Failed to {action}"}), 500


# -- Suppliers --

@suppliers_bp.get("")
@require_access("suppliers:manage")
def list_suppliers(access):
    include_archived = request.args.get("includeArchived", "false").lower() == "true"
    suppliers = purchase_order_service.list_suppliers(access.tenant_id, include_archived)
    return jsonify({"success": True, "suppliers": [s.to_dict() for s in suppliers]}), 200


@suppliers_bp.post("")
@require_access("suppliers:manage")
def create_supplier(access):
    """
    Request body:
    {
        "userId": str,
        "name": str,
        "contactPerson"?, "email"?, "phone"?, "address"?, "paymentTerms"?
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        supplier = commit_with_retry(lambda: purchase_order_service.create_supplier(access.tenant_id, data))
        return jsonify({"success": True, "supplier": supplier.to_dict()}), 201
    except Exception as e:
        return _error(e, "create supplier")


@suppliers_bp.post("/<supplier_id>/archive")
@require_access("suppliers:manage")
def archive_supplier(supplier_id, access):
    try:
        supplier = commit_with_retry(lambda: purchase_order_service.archive_supplier(supplier_id, access.tenant_id))
        return jsonify({"success": True, "supplier": supplier.to_dict()}), 200
    except Exception as e:
        return _error(e, "archive supplier")


@suppliers_bp.get("/dashboard")
@require_access("suppliers:manage")
def supplier_dashboard(access):
    try:
        data = purchase_order_service.get_supplier_dashboard(
            access.tenant_id, branch_ids=access_service.branch_scope(access)
        )
        return jsonify({"success": True, "dashboard": data}), 200
    except Exception as e:
        return _error(e, "load supplier dashboard")


@suppliers_bp.get("/<supplier_id>/performance")
@require_access("suppliers:manage")
def get_supplier_performance(supplier_id, access):
    try:
        report = purchase_order_service.get_supplier_performance_report(supplier_id, access.tenant_id)
        return jsonify({"success": True, "performance": report}), 200
    except Exception as e:
        return _error(e, "load supplier performance")


@suppliers_bp.put("/<supplier_id>/performance")
@require_access("suppliers:manage")
def update_supplier_performance(supplier_id, access):
    """
    Request body:
    {
        "userId": str,
        "onTimeDelivery": bool (optional, with deliveryDays),
        "deliveryDays": number >= 0 (optional, with onTimeDelivery),
        "qualityRating" / "serviceRating" / "pricingRating": 1-5 (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        supplier = commit_with_retry(
            lambda: purchase_order_service.update_supplier_performance(supplier_id, access.tenant_id, data)
        )
        return jsonify({"success": True, "supplier": supplier.to_dict()}), 200
    except Exception as e:
        return _error(e, "update supplier performance")


# -- Purchase orders --

@purchase_orders_bp.get("")
@require_access("purchase_orders:create")
def list_purchase_orders(access):
    try:
        branch_id = request.args.get("branchId")
        if branch_id:
            access_service.require_branch_access(access, branch_id)
        orders = purchase_order_service.list_purchase_orders(
            access.tenant_id, request.args.get("status"), branch_id
        )
        orders = [po for po in orders if access_service.can_access_branch(access, po.branch_id)]
        return jsonify({"success": True, "purchaseOrders": [po.to_dict() for po in orders]}), 200
    except Exception as e:
        return _error(e, "list purchase orders")


@purchase_orders_bp.get("/dashboard")
@require_access("purchase_orders:create")
def purchase_order_dashboard(access):
    """
    Query params:
        userId, includeDetails? ("true" adds pendingApprovalsList and overdueOrdersList)
    """
    try:
        include_details = request.args.get("includeDetails", "false").lower() == "true"
        data = purchase_order_service.get_purchase_order_dashboard(
            access.tenant_id,
            include_details=include_details,
            branch_ids=access_service.branch_scope(access),
        )
        return jsonify({"success": True, "dashboard": data}), 200
    except Exception as e:
        return _error(e, "load purchase order dashboard")


@purchase_orders_bp.post("")
@require_access("purchase_orders:create")
def create_purchase_order(access):
    """
    Request body:
    {
        "userId": str,
        "supplierId": str,
        "branchId": str,
        "items": [{"productId": str, "quantityOrdered": int, "unitCost": number}],
        "expectedDeliveryDate": ISO-8601 str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Purchase order created in DRAFT
    """
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_branch_access(access, data.get("branchId"))
        po = commit_with_retry(lambda: purchase_order_service.create_purchase_order(
            access.tenant_id,
            data.get("supplierId"),
            data.get("branchId"),
            data.get("items"),
            actor_id=access.user_id,
            notes=data.get("notes"),
            expected_delivery_date=data.get("expectedDeliveryDate"),
        ))
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 201
    except Exception as e:
        return _error(e, "create purchase order")


def _scoped_po(po_id, access):
    po = purchase_order_service.get_purchase_order(po_id, access.tenant_id)
    access_service.require_branch_access(access, po.branch_id)
    return po


@purchase_orders_bp.get("/<po_id>")
@require_access("purchase_orders:create")
def get_purchase_order(po_id, access):
    try:
        po = _scoped_po(po_id, access)
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 200
    except Exception as e:
        return _error(e, "load purchase order")


@purchase_orders_bp.put("/<po_id>")
@require_access("purchase_orders:create")
def update_purchase_order(po_id, access):
    """
    Request body: {"userId": str, "action": "submit"}

    Approval, sending and receipt use their own endpoints.
    """
    data = request.get_json(silent=True) or {}
    try:
        _scoped_po(po_id, access)
        po = commit_with_retry(
            lambda: purchase_order_service.update_purchase_order(po_id, access.tenant_id, data)
        )
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 200
    except Exception as e:
        return _error(e, "update purchase order")


@purchase_orders_bp.post("/<po_id>/submit")
@require_access("purchase_orders:create")
def submit_purchase_order(po_id, access):
    try:
        _scoped_po(po_id, access)
        po = commit_with_retry(lambda: purchase_order_service.submit_purchase_order(po_id, access.tenant_id))
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 200
    except Exception as e:
        return _error(e, "submit purchase order")


@purchase_orders_bp.post("/<po_id>/approve")
@require_access("purchase_orders:approve")
def approve_purchase_order(po_id, access):
    """
    Request body:
    {
        "userId": str,
        "approved": bool,
        "rejectionReason": str (required when approved is false),
        "notes": str (optional)
    }

    Returns:
        200: Approved or rejected
        400: Not pending, self-approval, or missing rejection reason
        404: Purchase order not found
    """
    data = request.get_json(silent=True) or {}
    try:
        _scoped_po(po_id, access)
        po = commit_with_retry(lambda: purchase_order_service.approve_purchase_order(
            po_id, access.tenant_id, data, actor_id=access.user_id
        ))
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 200
    except Exception as e:
        return _error(e, "approve purchase order")


@purchase_orders_bp.post("/<po_id>/send")
@require_access("purchase_orders:send")
def send_purchase_order(po_id, access):
    """Request body: {"userId": str, "sentAt": ISO-8601 str (optional), "supplierNotes": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        _scoped_po(po_id, access)
        po = commit_with_retry(lambda: purchase_order_service.send_purchase_order(po_id, access.tenant_id, data))
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 200
    except Exception as e:
        return _error(e, "send purchase order")


@purchase_orders_bp.post("/<po_id>/receive")
@require_access("purchase_orders:receive")
def receive_purchase_order(po_id, access):
    """
    Request body:
    {
        "userId": str,
        "items": [{"productId": str, "quantityReceived": int, "defectiveQuantity": int (optional)}],
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        _scoped_po(po_id, access)
        po = commit_with_retry(lambda: purchase_order_service.receive_purchase_order(
            po_id, access.tenant_id, data.get("items"), actor_id=access.user_id, notes=data.get("notes")
        ))
        return jsonify({"success": True, "purchaseOrder": po.to_dict()}), 200
    except Exception as e:
        return _error(e, "receive purchase order")
