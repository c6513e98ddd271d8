# Overview: Free/Pro plan limits table and the checks that gate creation of limited resources.

"""
Plan gate.

The limits table is static. Usage is always counted fresh from the store at
the time of the check, and tier resolution applies lazy subscription expiry,
so no cached counter or stored tier can drift.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import AccessDeniedError, ValidationError
from ..extensions import db
from ..models import Branch, Debtor, Product, Sale, StaffMember, Subscription, Supplier
from ..time_utils import local_day_bounds, utcnow


TIER_FREE = "free"
TIER_PRO = "pro"

UNLIMITED = "unlimited"

PLAN_LIMITS = {
    TIER_FREE: {
        "products": 10,
        "dailySales": 5,
        "branches": 0,
        "staff": 0,
        "suppliers": 5,
        "debtors": 5,
        "reports": False,
    },
    TIER_PRO: {
        "products": UNLIMITED,
        "dailySales": UNLIMITED,
        "branches": UNLIMITED,
        "staff": UNLIMITED,
        "suppliers": UNLIMITED,
        "debtors": UNLIMITED,
        "reports": True,
    },
}

FEATURE_NAMES = {
    "products": "Products",
    "dailySales": "Daily Sales",
    "branches": "Branches",
    "staff": "Staff Members",
    "suppliers": "Suppliers",
    "debtors": "Debtors",
    "reports": "Reports",
}

TIER_NAMES = {
    TIER_FREE: "Free",
    TIER_PRO: "Pro",
}


@dataclass(frozen=True)
class PlanCheck:
    feature: str
    tier: str
    allowed: bool
    limit: object
    current_usage: int
    limit_reached: bool
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "feature": self.feature,
            "tier": self.tier,
            "allowed": self.allowed,
            "limit": self.limit,
            "currentUsage": self.current_usage,
            "limitReached": self.limit_reached,
            "message": self.message,
        }


class PlanLimitError(AccessDeniedError):
    """Raised when a create would exceed the tenant's plan limit."""

    def __init__(self, check: PlanCheck):
        super().__init__(check.message or "Plan limit reached")
        self.check = check
        self.payload = {"planCheck": check.to_dict()}


def is_unlimited(limit) -> bool:
    return limit == UNLIMITED


def get_numeric_limit(limit) -> float:
    """Countable limit as a number; unlimited is infinity."""
    if is_unlimited(limit):
        return math.inf
    if isinstance(limit, bool):
        raise ValidationError("Feature is not countable")
    return limit


def _limits_for(feature: str, tier: str):
    if tier not in PLAN_LIMITS:
        raise ValidationError(f"Unknown plan tier: {tier}")
    limits = PLAN_LIMITS[tier]
    if feature not in limits:
        raise ValidationError(f"Unknown feature: {feature}")
    return limits[feature]


def check_access(feature: str, tier: str, current_usage: int = 0) -> PlanCheck:
    """
    Decide whether one more unit of `feature` is allowed at `tier`.

    Countable features are allowed while usage is strictly below the limit;
    boolean features are allowed when the flag is True. Read-only.
    """
    limit = _limits_for(feature, tier)
    name = FEATURE_NAMES[feature]

    if isinstance(limit, bool):
        allowed = limit
        message = None if allowed else (
            f"{name} are not available on the {TIER_NAMES[tier]} plan. "
            "Upgrade to Pro to unlock them."
        )
        return PlanCheck(
            feature=feature,
            tier=tier,
            allowed=allowed,
            limit=limit,
            current_usage=current_usage,
            limit_reached=not allowed,
            message=message,
        )

    numeric_limit = get_numeric_limit(limit)
    allowed = current_usage < numeric_limit
    limit_reached = not is_unlimited(limit) and current_usage >= numeric_limit
    message = None
    if not allowed:
        message = (
            f"You've reached the {name.lower()} limit ({limit}) for the "
            f"{TIER_NAMES[tier]} plan. Upgrade to Pro for unlimited access."
        )
    return PlanCheck(
        feature=feature,
        tier=tier,
        allowed=allowed,
        limit=limit,
        current_usage=current_usage,
        limit_reached=limit_reached,
        message=message,
    )


def resolve_plan_tier(user_id: str, now: datetime | None = None) -> str:
    """Pro iff the tenant holds an active subscription whose end date is still ahead."""
    now = now or utcnow()
    active = (
        db.session.query(Subscription.id)
        .filter(
            Subscription.user_id == user_id,
            Subscription.status == "active",
            Subscription.end_date > now,
        )
        .first()
    )
    return TIER_PRO if active else TIER_FREE


def get_feature_usage(user_id: str, feature: str, now: datetime | None = None) -> int:
    """
    Current usage of a countable feature for the tenant.

    dailySales counts sales inside the current calendar day of the business
    time zone. branches counts additional branches only; the main branch is
    part of every plan.
    """
    now = now or utcnow()
    if feature == "products":
        return Product.query.filter_by(user_id=user_id, is_active=True).count()
    if feature == "dailySales":
        start, end = local_day_bounds(now, current_app.config.get("BUSINESS_TIMEZONE", "Africa/Nairobi"))
        return (
            Sale.query
            .filter(Sale.user_id == user_id, Sale.created_at >= start, Sale.created_at < end)
            .count()
        )
    if feature == "branches":
        return Branch.query.filter_by(user_id=user_id, status="ACTIVE", is_main=False).count()
    if feature == "staff":
        return StaffMember.query.filter(
            StaffMember.user_id == user_id,
            StaffMember.status != "inactive",
        ).count()
    if feature == "suppliers":
        return Supplier.query.filter_by(user_id=user_id, status="ACTIVE").count()
    if feature == "debtors":
        return Debtor.query.filter_by(user_id=user_id).count()
    if feature == "reports":
        return 0
    raise ValidationError(f"Unknown feature: {feature}")


def check_plan_limit(user_id: str, feature: str, now: datetime | None = None) -> PlanCheck:
    """Resolve the tenant's tier, count usage fresh, and check."""
    now = now or utcnow()
    tier = resolve_plan_tier(user_id, now)
    usage = get_feature_usage(user_id, feature, now)
    return check_access(feature, tier, usage)


def enforce_plan_limit(user_id: str, feature: str, now: datetime | None = None) -> PlanCheck:
    """check_plan_limit, raising PlanLimitError when not allowed."""
    check = check_plan_limit(user_id, feature, now)
    if not check.allowed:
        raise PlanLimitError(check)
    return check
