# backend/fahampesa/routes/sales.py
"""
Sales and debtor routes. Both creations are limited by the tenant's plan.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, sales_service
from ..services.concurrency import commit_with_retry


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
debtors_bp = Blueprint("debtors", __name__, url_prefix="/api/debtors")


@sales_bp.post("")
@require_access("sales:create")
def record_sale(access):
    """
    Request body:
    {
        "userId": str,
        "branchId": str,
        "lines": [{"productId": str, "quantity": int, "unitPrice": number (optional)}],
        "paymentMethod": "cash" | "mpesa" | "credit" (optional),
        "debtorId": str (credit sales)
    }

    Returns:
        201: Sale recorded
        400: Invalid request or insufficient stock
        403: Daily sales limit reached
    """
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_branch_access(access, data.get("branchId"))
        sale = commit_with_retry(lambda: sales_service.record_sale(access.tenant_id, data, actor_id=access.user_id))
        return jsonify({"success": True, "sale": sale.to_dict()}), 201
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record sale")
        return jsonify({"success": False, "error": "Failed to record sale"}), 500


@sales_bp.get("/today")
@require_access("sales:create")
def sales_today(access):
    count = sales_service.count_sales_for_day(access.tenant_id)
    return jsonify({"success": True, "count": count}), 200


@debtors_bp.get("")
@require_access("debtors:manage")
def list_debtors(access):
    debtors = sales_service.list_debtors(access.tenant_id)
    return jsonify({"success": True, "debtors": [d.to_dict() for d in debtors]}), 200


@debtors_bp.post("")
@require_access("debtors:manage")
def create_debtor(access):
    """Request body: {"userId": str, "name": str, "phone": str (optional), "amountOwed": number (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        debtor = commit_with_retry(lambda: sales_service.create_debtor(access.tenant_id, data))
        return jsonify({"success": True, "debtor": debtor.to_dict()}), 201
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create debtor")
        return jsonify({"success": False, "error": "Failed to create debtor"}), 500
