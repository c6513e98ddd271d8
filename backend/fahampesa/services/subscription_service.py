# backend/fahampesa/services/subscription_service.py
"""
Pro-plan subscriptions.

LIFECYCLE:
1. pending: Checkout started, awaiting payment confirmation
2. active: Paid; start_date = activation time, end_date = start + plan duration
3. expired: end_date passed (derived lazily on read; the sweep only tidies rows)
4. failed: Payment did not complete
5. cancelled: Revoked by an administrator

Expiry is evaluated on every read: an "active" row whose end_date is in the
past is reported and treated as expired even if no sweep ever ran.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from ..errors import AlreadyActiveError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Subscription
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"

PLAN_PRICING = {
    PLAN_MONTHLY: {"KSH": 2000, "USD": 10},
    PLAN_YEARLY: {"KSH": 20000, "USD": 100},
}

PLAN_NAMES = {
    PLAN_MONTHLY: "1 month Pro Plan",
    PLAN_YEARLY: "1 year Pro Plan",
}

# Days added per plan type or admin extension
PLAN_DURATION_DAYS = {
    PLAN_MONTHLY: 30,
    PLAN_YEARLY: 365,
    "1-month": 30,
    "2-months": 60,
}

EXTENSION_DURATIONS = ("1-month", "2-months")


def _locked_subscription(subscription_id: str) -> Subscription:
    subscription = lock_for_update(Subscription.query.filter_by(id=subscription_id)).first()
    if subscription is None:
        raise NotFoundError("Subscription not found")
    return subscription


def is_subscription_active(subscription: Subscription | None, now: datetime | None = None) -> bool:
    """True only for status active with an end date still ahead of `now`."""
    if subscription is None or subscription.status != STATUS_ACTIVE:
        return False
    if subscription.end_date is None:
        return False
    return subscription.end_date > (now or utcnow())


def effective_status(subscription: Subscription, now: datetime | None = None) -> str:
    """Stored status with lazy expiry applied."""
    if subscription.status == STATUS_ACTIVE and not is_subscription_active(subscription, now):
        return STATUS_EXPIRED
    return subscription.status


def serialize(subscription: Subscription, now: datetime | None = None) -> dict:
    return subscription.to_dict(effective_status=effective_status(subscription, now))


def create_pending_subscription(
    user_id: str,
    plan_type: str,
    *,
    email: str | None = None,
    currency: str = "KSH",
    phone_number: str | None = None,
    checkout_request_id: str | None = None,
) -> Subscription:
    """Record a checkout that is waiting for payment confirmation."""
    if not user_id:
        raise ValidationError("userId is required")
    if plan_type not in PLAN_PRICING:
        raise ValidationError(f"Invalid plan type: {plan_type}")
    if currency not in PLAN_PRICING[plan_type]:
        raise ValidationError(f"Invalid currency: {currency}")

    subscription = Subscription(
        user_id=user_id,
        email=email,
        plan_type=plan_type,
        plan_name=PLAN_NAMES[plan_type],
        status=STATUS_PENDING,
        amount=PLAN_PRICING[plan_type][currency],
        currency=currency,
        phone_number=phone_number,
        checkout_request_id=checkout_request_id,
    )
    db.session.add(subscription)
    db.session.flush()
    return subscription


def activate_subscription(
    subscription_id: str,
    transaction_id: str | None = None,
    now: datetime | None = None,
) -> Subscription:
    """
    Activate a pending subscription after confirmed payment.

    Raises:
        NotFoundError: No such subscription
        AlreadyActiveError: Subscription is already active
        InvalidStateError: Subscription is failed, expired or cancelled
    """
    def _op():
        subscription = _locked_subscription(subscription_id)
        if subscription.status == STATUS_ACTIVE:
            raise AlreadyActiveError("Subscription is already active")
        if subscription.status != STATUS_PENDING:
            raise InvalidStateError(f"Cannot activate subscription in {subscription.status} status")

        start = now or utcnow()
        subscription.status = STATUS_ACTIVE
        subscription.start_date = start
        subscription.end_date = start + timedelta(days=PLAN_DURATION_DAYS[subscription.plan_type])
        if transaction_id:
            subscription.transaction_id = transaction_id
        db.session.flush()
        return subscription

    return run_with_retry(_op)


def mark_subscription_failed(subscription_id: str, reason: str | None = None) -> Subscription:
    """pending -> failed."""
    def _op():
        subscription = _locked_subscription(subscription_id)
        if subscription.status != STATUS_PENDING:
            raise InvalidStateError(f"Cannot fail subscription in {subscription.status} status")
        subscription.status = STATUS_FAILED
        subscription.failure_reason = reason
        db.session.flush()
        return subscription

    return run_with_retry(_op)


def extend_subscription(
    subscription_id: str,
    duration: str,
    admin_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Subscription:
    """
    Add time to a subscription (admin only).

    The extension starts from the later of the current end date and now, so
    an expired subscription restarts today. The subscription becomes active;
    one that was expired or cancelled also gets a fresh start date.
    """
    if duration not in EXTENSION_DURATIONS:
        raise ValidationError(f"Invalid duration: {duration}")
    now = now or utcnow()

    def _op():
        subscription = _locked_subscription(subscription_id)
        lapsed = subscription.status in (STATUS_EXPIRED, STATUS_CANCELLED) or (
            subscription.status == STATUS_ACTIVE and not is_subscription_active(subscription, now)
        )
        base = subscription.end_date if subscription.end_date and subscription.end_date > now else now
        subscription.end_date = base + timedelta(days=PLAN_DURATION_DAYS[duration])
        if lapsed or subscription.start_date is None:
            subscription.start_date = now
        subscription.status = STATUS_ACTIVE
        subscription.extended_by = admin_id
        subscription.extended_at = now
        subscription.admin_reason = reason
        db.session.flush()
        return subscription

    return run_with_retry(_op)


def revoke_subscription(
    subscription_id: str,
    admin_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Subscription:
    """Cancel a subscription effective immediately (admin only)."""
    now = now or utcnow()

    def _op():
        subscription = _locked_subscription(subscription_id)
        if subscription.status == STATUS_CANCELLED:
            raise InvalidStateError("Subscription is already cancelled")
        subscription.status = STATUS_CANCELLED
        subscription.end_date = now
        subscription.revoked_by = admin_id
        subscription.revoked_at = now
        subscription.admin_reason = reason
        db.session.flush()
        return subscription

    return run_with_retry(_op)


def get_subscription(subscription_id: str) -> Subscription:
    subscription = db.session.get(Subscription, subscription_id) if subscription_id else None
    if subscription is None:
        raise NotFoundError("Subscription not found")
    return subscription


def find_subscription_by_checkout_request_id(checkout_request_id: str) -> Subscription | None:
    return Subscription.query.filter_by(checkout_request_id=checkout_request_id).first()


def get_user_subscriptions(user_id: str) -> list[Subscription]:
    return (
        Subscription.query.filter_by(user_id=user_id)
        .order_by(Subscription.created_at.desc())
        .all()
    )


def get_user_active_subscription(user_id: str, now: datetime | None = None) -> Subscription | None:
    """Latest-ending subscription that is active right now, if any."""
    now = now or utcnow()
    return (
        Subscription.query.filter(
            Subscription.user_id == user_id,
            Subscription.status == STATUS_ACTIVE,
            Subscription.end_date > now,
        )
        .order_by(Subscription.end_date.desc())
        .first()
    )


def expire_subscriptions(now: datetime | None = None) -> int:
    """
    Mark active rows whose end date has passed as expired.

    Reads already treat such rows as expired; this only brings stored
    status in line. Returns the number of rows changed.
    """
    now = now or utcnow()
    stale = Subscription.query.filter(
        Subscription.status == STATUS_ACTIVE,
        Subscription.end_date <= now,
    ).all()
    for subscription in stale:
        subscription.status = STATUS_EXPIRED
    db.session.flush()
    return len(stale)
