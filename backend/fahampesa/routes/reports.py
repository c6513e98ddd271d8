# backend/fahampesa/routes/reports.py
"""
Reporting routes.

SECURITY: reports:read, and the tenant's plan must include reports (Pro).
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access, require_plan
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import inventory_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/inventory-value")
@require_access("reports:read")
@require_plan("reports")
def inventory_value(access):
    """
    Query params:
        userId, branchId (optional)

    Returns:
        200: {"success": true, "report": {"branches": [...], "totalValue": n, ...}}
        403: Reports not included in the tenant's plan
    """
    try:
        report = inventory_service.get_inventory_value(access.tenant_id, request.args.get("branchId"))
        return jsonify({"success": True, "report": report}), 200
    except FahamPesaError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to build inventory value report")
        return jsonify({"success": False, "error": "Failed to build inventory value report"}), 500
