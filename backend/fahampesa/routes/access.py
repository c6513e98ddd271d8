# backend/fahampesa/routes/access.py
"""
Caller access and plan introspection.

GET /api/access        -> resolved role, permissions and branch scope
GET /api/plan/check    -> whether the tenant may use one more of a feature
GET /api/plan/limits   -> the tenant's tier and its limits table
GET /api/permissions   -> permission catalogue, grouped by category
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..permissions import (
    PERMISSION_DEFINITIONS,
    PLATFORM_ONLY_PERMISSIONS,
    get_permission_definition,
    get_permissions_by_category,
)
from ..services import plan_limits


access_bp = Blueprint("access", __name__, url_prefix="/api")


@access_bp.get("/access")
@require_access()
def get_access(access):
    return jsonify({"success": True, "access": access.to_dict()}), 200


@access_bp.get("/plan/check")
@require_access()
def check_plan(access):
    """
    Query params:
        userId, feature (products, dailySales, branches, staff, suppliers, debtors, reports)

    Returns:
        200: {"success": true, "planCheck": {...}}
        400: Unknown feature
    """
    try:
        feature = request.args.get("feature")
        if not feature:
            return jsonify({"success": False, "error": "feature is required"}), 400
        check = plan_limits.check_plan_limit(access.tenant_id, feature)
        return jsonify({"success": True, "planCheck": check.to_dict()}), 200
    except FahamPesaError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to check plan limit")
        return jsonify({"success": False, "error": "Failed to check plan limit"}), 500


@access_bp.get("/plan/limits")
@require_access()
def get_plan_limits(access):
    try:
        tier = plan_limits.resolve_plan_tier(access.tenant_id)
        return jsonify({
            "success": True,
            "tier": tier,
            "limits": plan_limits.PLAN_LIMITS[tier],
            "featureNames": plan_limits.FEATURE_NAMES,
        }), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load plan limits")
        return jsonify({"success": False, "error": "Failed to load plan limits"}), 500


def _describe(code):
    definition = get_permission_definition(code)
    definition["assignable"] = code not in PLATFORM_ONLY_PERMISSIONS
    return definition


@access_bp.get("/permissions")
@require_access("staff:read")
def list_permissions(access):
    """
    Query params:
        userId, code (optional, a single permission)

    Returns:
        200: {"success": true, "categories": {CATEGORY: [{code, name, description, category, assignable}]}}
        404: Unknown code
    """
    code = request.args.get("code")
    if code:
        if get_permission_definition(code) is None:
            return jsonify({"success": False, "error": "Permission not found"}), 404
        return jsonify({"success": True, "permission": _describe(code)}), 200

    categories = {}
    for category in dict.fromkeys(perm[3] for perm in PERMISSION_DEFINITIONS):
        categories[category] = [_describe(perm[0]) for perm in get_permissions_by_category(category)]
    return jsonify({"success": True, "categories": categories}), 200
