# backend/fahampesa/routes/branches.py
"""
Branch management routes.

SECURITY: Listing requires inventory:read; changes require branches:manage.
Creating a branch beyond the main one is limited by the tenant's plan.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, branch_service
from ..services.concurrency import commit_with_retry


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_access("inventory:read")
def list_branches(access):
    include_inactive = request.args.get("includeInactive", "false").lower() == "true"
    branches = branch_service.list_branches(access.tenant_id, include_inactive=include_inactive)
    branches = [b for b in branches if access_service.can_access_branch(access, b.id)]
    return jsonify({"success": True, "branches": [b.to_dict() for b in branches]}), 200


@branches_bp.post("")
@require_access("branches:manage")
def create_branch(access):
    """
    Request body:
    {
        "userId": str,
        "name": str,
        "code": str (optional),
        "address": str (optional),
        "phone": str (optional)
    }

    Returns:
        201: Branch created
        400: Invalid request
        403: Permission denied or plan limit reached
    """
    data = request.get_json(silent=True) or {}
    try:
        branch = commit_with_retry(lambda: branch_service.create_branch(access.tenant_id, data))
        return jsonify({"success": True, "branch": branch.to_dict()}), 201
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create branch")
        return jsonify({"success": False, "error": "Failed to create branch"}), 500


@branches_bp.post("/<branch_id>/deactivate")
@require_access("branches:manage")
def deactivate_branch(branch_id, access):
    try:
        branch = commit_with_retry(lambda: branch_service.deactivate_branch(branch_id, access.tenant_id))
        return jsonify({"success": True, "branch": branch.to_dict()}), 200
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate branch")
        return jsonify({"success": False, "error": "Failed to deactivate branch"}), 500


@branches_bp.get("/dashboard")
@require_access("branches:manage")
def branch_dashboard(access):
    try:
        data = branch_service.get_branch_dashboard(access.tenant_id, access_service.branch_scope(access))
        return jsonify({"success": True, "dashboard": data}), 200
    except FahamPesaError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load branch dashboard")
        return jsonify({"success": False, "error": "Failed to load branch dashboard"}), 500
