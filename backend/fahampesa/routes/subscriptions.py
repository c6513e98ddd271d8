# backend/fahampesa/routes/subscriptions.py
"""
Subscription routes.

- /api/mpesa/status: checkout polling; no caller identity needed
- /api/subscriptions: the caller's own subscriptions and new checkouts
- /api/admin/subscriptions/*: super-admin lifecycle actions, each written to
  the security audit trail

Statuses are reported with lazy expiry applied.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import access_service, plan_limits, subscription_service
from ..services.concurrency import commit_with_retry


mpesa_bp = Blueprint("mpesa", __name__, url_prefix="/api/mpesa")
subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")
admin_subscriptions_bp = Blueprint("admin_subscriptions", __name__, url_prefix="/api/admin/subscriptions")


def _error(e, action):
    db.session.rollback()
    if isinstance(e, FahamPesaError):
        body, status = error_response(e)
        return jsonify(body), status
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"success": False, "error": f"Failed to {action}"}), 500


@mpesa_bp.get("/status")
def payment_status():
    """
    Query params:
        subscriptionId, or checkoutRequestId from the STK push response

    Returns:
        200: {"success": true, "status", "transactionId", "planType", "planName"}
        400: Neither id given
        404: Subscription not found
    """
    subscription_id = request.args.get("subscriptionId")
    checkout_request_id = request.args.get("checkoutRequestId")
    if not subscription_id and not checkout_request_id:
        return jsonify({"success": False, "error": "subscriptionId or checkoutRequestId is required"}), 400
    try:
        if subscription_id:
            subscription = subscription_service.get_subscription(subscription_id)
        else:
            subscription = subscription_service.find_subscription_by_checkout_request_id(checkout_request_id)
            if subscription is None:
                return jsonify({"success": False, "error": "Subscription not found"}), 404
        return jsonify({
            "success": True,
            "status": subscription_service.effective_status(subscription),
            "transactionId": subscription.transaction_id,
            "planType": subscription.plan_type,
            "planName": subscription.plan_name,
        }), 200
    except Exception as e:
        return _error(e, "check payment status")


@subscriptions_bp.get("")
@require_access("subscriptions:read")
def list_subscriptions(access):
    try:
        subscriptions = subscription_service.get_user_subscriptions(access.tenant_id)
        active = subscription_service.get_user_active_subscription(access.tenant_id)
        return jsonify({
            "success": True,
            "tier": plan_limits.resolve_plan_tier(access.tenant_id),
            "activeSubscription": subscription_service.serialize(active) if active else None,
            "subscriptions": [subscription_service.serialize(s) for s in subscriptions],
        }), 200
    except Exception as e:
        return _error(e, "load subscriptions")


@subscriptions_bp.post("")
@require_access("subscriptions:read")
def start_checkout(access):
    """
    Record a pending subscription for a checkout the client is starting.

    Request body:
    {
        "userId": str,
        "planType": "monthly" | "yearly",
        "currency": "KSH" | "USD" (optional),
        "email": str (optional),
        "phoneNumber": str (optional),
        "checkoutRequestId": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        subscription = commit_with_retry(lambda: subscription_service.create_pending_subscription(
            access.tenant_id,
            data.get("planType"),
            email=data.get("email"),
            currency=data.get("currency", "KSH"),
            phone_number=data.get("phoneNumber"),
            checkout_request_id=data.get("checkoutRequestId"),
        ))
        return jsonify({"success": True, "subscription": subscription_service.serialize(subscription)}), 201
    except Exception as e:
        return _error(e, "start checkout")


def _audit(access, event_type, subscription, reason=None):
    access_service.log_security_event(
        user_id=access.user_id,
        tenant_id=subscription.user_id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        commit=False,
    )
    current_app.logger.info("%s: subscription=%s by=%s", event_type, subscription.id, access.user_id)


@admin_subscriptions_bp.post("/activate")
@require_access("subscriptions:manage")
def admin_activate(access):
    """Request body: {"userId": str, "subscriptionId": str, "transactionId": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_super_admin(access)

        def _apply():
            subscription = subscription_service.activate_subscription(
                data.get("subscriptionId"), data.get("transactionId")
            )
            _audit(access, "SUBSCRIPTION_ACTIVATED", subscription)
            return subscription

        subscription = commit_with_retry(_apply)
        return jsonify({"success": True, "subscription": subscription_service.serialize(subscription)}), 200
    except Exception as e:
        return _error(e, "activate subscription")


@admin_subscriptions_bp.post("/extend")
@require_access("subscriptions:manage")
def admin_extend(access):
    """Request body: {"userId": str, "subscriptionId": str, "duration": "1-month" | "2-months", "reason": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_super_admin(access)

        def _apply():
            subscription = subscription_service.extend_subscription(
                data.get("subscriptionId"), data.get("duration"), access.user_id, data.get("reason")
            )
            _audit(access, "SUBSCRIPTION_EXTENDED", subscription, data.get("reason"))
            return subscription

        subscription = commit_with_retry(_apply)
        return jsonify({"success": True, "subscription": subscription_service.serialize(subscription)}), 200
    except Exception as e:
        return _error(e, "extend subscription")


@admin_subscriptions_bp.post("/revoke")
@require_access("subscriptions:manage")
def admin_revoke(access):
    """Request body: {"userId": str, "subscriptionId": str, "reason": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_super_admin(access)

        def _apply():
            subscription = subscription_service.revoke_subscription(
                data.get("subscriptionId"), access.user_id, data.get("reason")
            )
            _audit(access, "SUBSCRIPTION_REVOKED", subscription, data.get("reason"))
            return subscription

        subscription = commit_with_retry(_apply)
        return jsonify({"success": True, "subscription": subscription_service.serialize(subscription)}), 200
    except Exception as e:
        return _error(e, "revoke subscription")


@admin_subscriptions_bp.post("/fail")
@require_access("subscriptions:manage")
def admin_fail(access):
    """Request body: {"userId": str, "subscriptionId": str, "reason": str (optional)}"""
    data = request.get_json(silent=True) or {}
    try:
        access_service.require_super_admin(access)

        def _apply():
            subscription = subscription_service.mark_subscription_failed(
                data.get("subscriptionId"), data.get("reason")
            )
            _audit(access, "SUBSCRIPTION_FAILED", subscription, data.get("reason"))
            return subscription

        subscription = commit_with_retry(_apply)
        return jsonify({"success": True, "subscription": subscription_service.serialize(subscription)}), 200
    except Exception as e:
        return _error(e, "mark subscription failed")
