# backend/fahampesa/routes/transfers.py
"""
Branch transfer API routes.

SECURITY: Staff may only act on transfers whose relevant branch is assigned
to them: the source branch to request or ship, the destination to receive.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access, require_any_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, transfer_service
from ..services.concurrency import commit_with_retry
from ..services.transfer_service import TransferFilter
from ..validation import coerce_int


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.post("")
@require_access("transfers:create")
def create_transfer(access):
    """
    Create a new transfer request.

    Request body:
    {
        "userId": str,
        "fromBranchId": str,
        "toBranchId": str,
        "items": [{"productId": str, "quantity": int}],
        "priority": "LOW" | "NORMAL" | "HIGH" | "URGENT" (optional),
        "reason": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request or insufficient stock at source
        403: Forbidden
        404: Branch or product not found
    """
    data = request.get_json(silent=True) or {}

    try:
        access_service.require_branch_access(access, data.get("fromBranchId"))
        transfer = commit_with_retry(lambda: transfer_service.create_branch_transfer(
            access.tenant_id,
            data.get("fromBranchId"),
            data.get("toBranchId"),
            data.get("items"),
            actor_id=access.user_id,
            priority=data.get("priority", "NORMAL"),
            reason=data.get("reason"),
            notes=data.get("notes"),
        ))

        return jsonify({"success": True, "transfer": transfer.to_dict()}), 201

    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"success": False, "error": "Failed to create transfer"}), 500


TRANSFER_READ_PERMISSIONS = ("transfers:create", "transfers:approve", "transfers:ship", "transfers:receive")


@transfers_bp.get("")
@require_any_access(*TRANSFER_READ_PERMISSIONS)
def list_transfers(access):
    """
    Query params:
        userId, status?, branchId?, direction? ("incoming" | "outgoing"), limit?
    """
    try:
        filters = TransferFilter(
            status=request.args.get("status"),
            branch_id=request.args.get("branchId"),
            direction=request.args.get("direction"),
            limit=coerce_int(request.args.get("limit", 100), "limit"),
        )
        transfers = transfer_service.list_branch_transfers(access.tenant_id, filters)
        transfers = [
            t for t in transfers
            if access_service.can_access_branch(access, t.from_branch_id)
            or access_service.can_access_branch(access, t.to_branch_id)
        ]
        return jsonify({"success": True, "transfers": [t.to_dict() for t in transfers]}), 200
    except FahamPesaError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"success": False, "error": "Failed to list transfers"}), 500


@transfers_bp.get("/<transfer_id>")
@require_any_access(*TRANSFER_READ_PERMISSIONS)
def get_transfer(transfer_id, access):
    try:
        transfer = transfer_service.get_branch_transfer(transfer_id, access.tenant_id)
        if not access_service.can_access_branch(access, transfer.to_branch_id):
            access_service.require_branch_access(access, transfer.from_branch_id)
        return jsonify({"success": True, "transfer": transfer.to_dict()}), 200
    except FahamPesaError as e:
        body, status = error_response(e)
        return jsonify(body), status


@transfers_bp.put("/<transfer_id>")
@require_access("transfers:create")
def update_transfer(transfer_id, access):
    """
    Request body: {"userId": str, "action": "cancel", "reason": str (optional)}

    Returns:
        200: Transfer cancelled (status REJECTED)
        400: Unknown action, or transfer already shipped, received or rejected
        404: Transfer not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.get_branch_transfer(transfer_id, access.tenant_id)
        access_service.require_branch_access(access, transfer.from_branch_id)
        transfer = commit_with_retry(lambda: transfer_service.update_branch_transfer(
            transfer_id, access.tenant_id, data, actor_id=access.user_id
        ))
        return jsonify({"success": True, "transfer": transfer.to_dict()}), 200

    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update transfer")
        return jsonify({"success": False, "error": "Failed to update transfer"}), 500


@transfers_bp.post("/<transfer_id>/approve")
@require_access("transfers:approve")
def approve_transfer(transfer_id, access):
    """
    Approve (optionally with reduced quantities) or reject a transfer.

    Request body:
    {
        "userId": str,
        "approved": bool (optional, default true),
        "approvals": [{"productId": str, "approvedQuantity": int}] (optional),
        "rejectionReason": str (optional),
        "notes": str (optional)
    }

    Returns:
        200: Transfer approved or rejected
        400: Not REQUESTED, or approved quantity exceeds requested
        404: Transfer not found
    """
    data = request.get_json(silent=True) or {}

    try:
        approved = data.get("approved", True)
        if not isinstance(approved, bool):
            return jsonify({"success": False, "error": "approved must be a boolean"}), 400

        transfer = commit_with_retry(lambda: transfer_service.approve_stock_transfer(
            transfer_id,
            access.tenant_id,
            data.get("approvals"),
            actor_id=access.user_id,
            approved=approved,
            rejection_reason=data.get("rejectionReason"),
            notes=data.get("notes"),
        ))

        return jsonify({"success": True, "transfer": transfer.to_dict()}), 200

    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve transfer")
        return jsonify({"success": False, "error": "Failed to approve transfer"}), 500


@transfers_bp.post("/<transfer_id>/reject")
@require_access("transfers:approve")
def reject_transfer(transfer_id, access):
    """Request body: {"userId": str, "reason": str (optional)}"""
    data = request.get_json(silent=True) or {}

    try:
        transfer = commit_with_retry(lambda: transfer_service.reject_stock_transfer(
            transfer_id, access.tenant_id, data.get("reason"), actor_id=access.user_id
        ))
        return jsonify({"success": True, "transfer": transfer.to_dict()}), 200

    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject transfer")
        return jsonify({"success": False, "error": "Failed to reject transfer"}), 500


@transfers_bp.post("/<transfer_id>/ship")
@require_access("transfers:ship")
def ship_transfer(transfer_id, access):
    """
    Ship an approved transfer. Decrements source stock.

    Request body:
    {
        "userId": str,
        "shippedBy": str,
        "trackingNumber": str (optional),
        "estimatedArrival": ISO-8601 str (optional, must be in the future),
        "shippingNotes": str (optional)
    }

    Returns:
        200: Transfer shipped
        400: Missing shippedBy, invalid or past estimatedArrival, wrong status
        404: Transfer not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.get_branch_transfer(transfer_id, access.tenant_id)
        access_service.require_branch_access(access, transfer.from_branch_id)

        transfer = commit_with_retry(lambda: transfer_service.ship_branch_transfer(
            transfer_id, access.tenant_id, data, actor_id=access.user_id
        ))

        return jsonify({"success": True, "transfer": transfer.to_dict()}), 200

    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to ship transfer")
        return jsonify({"success": False, "error": "Failed to ship transfer"}), 500


@transfers_bp.post("/<transfer_id>/receive")
@require_access("transfers:receive")
def receive_transfer(transfer_id, access):
    """
    Receive a shipped transfer. Increments destination stock.

    Request body:
    {
        "userId": str,
        "items": [{"productId": str, "receivedQuantity": int}] (optional; omitted = as shipped),
        "notes": str (optional)
    }

    Returns:
        200: Transfer received
        400: Received exceeds shipped, wrong status
        404: Transfer not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.get_branch_transfer(transfer_id, access.tenant_id)
        access_service.require_branch_access(access, transfer.to_branch_id)

        transfer = commit_with_retry(lambda: transfer_service.receive_stock_transfer(
            transfer_id,
            access.tenant_id,
            data.get("items"),
            actor_id=access.user_id,
            notes=data.get("notes"),
        ))

        return jsonify({"success": True, "transfer": transfer.to_dict()}), 200

    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive transfer")
        return jsonify({"success": False, "error": "Failed to receive transfer"}), 500
