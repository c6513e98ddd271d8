# backend/fahampesa/routes/staff.py
"""
Staff management routes.

SECURITY: Listing requires staff:read; changes require staff:manage.
Adding staff is limited by the tenant's plan (none on Free).
Any active member of the tenant may append to their own activity log.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, staff_service
from ..services.concurrency import commit_with_retry
from ..validation import coerce_datetime, coerce_int


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


@staff_bp.get("")
@require_access("staff:read")
def list_staff(access):
    staff = staff_service.list_staff(access.tenant_id)
    return jsonify({"success": True, "staff": [s.to_dict() for s in staff]}), 200


@staff_bp.post("")
@require_access("staff:manage")
def create_staff(access):
    """
    Request body:
    {
        "userId": str,
        "authId": str,
        "fullName": str,
        "role": "cashier" | "manager" | "owner",
        "branchIds": [str] (optional),
        "permissions": [str] (optional, replaces role defaults),
        "email": str (optional),
        "phone": str (optional)
    }

    Returns:
        201: Staff member created
        400: Invalid request
        403: Permission denied or plan limit reached
    """
    data = request.get_json(silent=True) or {}
    try:
        staff = commit_with_retry(
            lambda: staff_service.create_staff_member(access.tenant_id, data, actor_id=access.user_id)
        )
        return jsonify({"success": True, "staff": staff.to_dict()}), 201
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff member")
        return jsonify({"success": False, "error": "Failed to create staff member"}), 500


def _set_status(staff_id, access, status):
    try:
        staff = commit_with_retry(lambda: staff_service.set_staff_status(staff_id, access.tenant_id, status))
        return jsonify({"success": True, "staff": staff.to_dict()}), 200
    except FahamPesaError as e:
        db.session.rollback()
        body, status_code = error_response(e)
        return jsonify(body), status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update staff status")
        return jsonify({"success": False, "error": "Failed to update staff status"}), 500


@staff_bp.post("/<staff_id>/activate")
@require_access("staff:manage")
def activate_staff(staff_id, access):
    return _set_status(staff_id, access, "active")


@staff_bp.post("/<staff_id>/deactivate")
@require_access("staff:manage")
def deactivate_staff(staff_id, access):
    return _set_status(staff_id, access, "inactive")


@staff_bp.post("/<staff_id>/suspend")
@require_access("staff:manage")
def suspend_staff(staff_id, access):
    return _set_status(staff_id, access, "suspended")


@staff_bp.get("/logs")
@require_access("staff:read")
def list_activity_logs(access):
    """
    Query params:
        userId, staffId?, branchId?, severity?, action?, startDate?, endDate?, limit? (default 100)

    Returns:
        200: {"success": true, "data": [...], "count": n}
    """
    try:
        args = request.args
        filters = staff_service.ActivityLogFilter(
            staff_id=args.get("staffId"),
            branch_id=args.get("branchId"),
            severity=args.get("severity"),
            action=args.get("action"),
            start_date=coerce_datetime(args.get("startDate"), "startDate"),
            end_date=coerce_datetime(args.get("endDate"), "endDate"),
            limit=coerce_int(args.get("limit", staff_service.DEFAULT_ACTIVITY_LIMIT), "limit"),
        )
        logs = staff_service.list_activity_logs(access.tenant_id, filters)
        logs = [log for log in logs if log.branch_id is None or access_service.can_access_branch(access, log.branch_id)]
        return jsonify({"success": True, "data": [log.to_dict() for log in logs], "count": len(logs)}), 200
    except FahamPesaError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load staff activity logs")
        return jsonify({"success": False, "error": "Failed to load staff activity logs"}), 500


@staff_bp.post("/logs")
@require_access()
def record_activity(access):
    """
    Request body:
    {
        "userId": str,
        "staffId": str,
        "action": str,
        "description": str,
        "staffName": str (optional),
        "branchId": str (optional),
        "metadata": object (optional),
        "severity": "info" | "warning" | "error" | "critical" (optional, default info)
    }

    Staff may only record their own activity.
    """
    data = request.get_json(silent=True) or {}
    try:
        entry = commit_with_retry(lambda: staff_service.record_activity(
            access.tenant_id,
            data,
            actor_id=access.user_id,
            own_record_only=access.is_staff,
        ))
        return jsonify({"success": True, "log": entry.to_dict()}), 201
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record staff activity")
        return jsonify({"success": False, "error": "Failed to record staff activity"}), 500
