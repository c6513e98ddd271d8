# Overview: Sales and debtors; both are plan-gated per tenant.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Debtor, Sale, SaleLine
from ..time_utils import local_day_bounds, utcnow
from ..validation import coerce_amount, coerce_list, coerce_positive_int, optional_str, require_str
from .concurrency import run_with_retry
from .inventory_service import MOVEMENT_SALE, record_stock_out
from .plan_limits import enforce_plan_limit
from .tenant_service import get_owned, require_branch, require_product


PAYMENT_METHODS = ("cash", "mpesa", "credit")


def record_sale(user_id: str, data: dict, *, actor_id: str | None = None) -> Sale:
    """
    Record a completed sale and take the sold units out of branch stock.

    Request data:
        branchId, lines [{productId, quantity, unitPrice?}], paymentMethod?,
        debtorId? (required for credit sales)

    Gated by the `dailySales` plan limit.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    branch = require_branch(user_id, data.get("branchId"), active=True)
    payment_method = data.get("paymentMethod", "cash")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid paymentMethod: {payment_method}")
    debtor = None
    if payment_method == "credit":
        debtor = get_owned(Debtor, data.get("debtorId"), user_id, "Debtor")

    lines = []
    for raw in coerce_list(data.get("lines"), "lines"):
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        product = require_product(user_id, raw.get("productId"))
        quantity = coerce_positive_int(raw.get("quantity"), "quantity")
        unit_price = coerce_amount(raw.get("unitPrice", product.selling_price or 0), "unitPrice")
        lines.append((product, quantity, unit_price))

    enforce_plan_limit(user_id, "dailySales")
    actor_id = actor_id or user_id

    def _op():
        sale = Sale(
            user_id=user_id,
            branch_id=branch.id,
            payment_method=payment_method,
            debtor_id=debtor.id if debtor else None,
            created_by=actor_id,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        total = 0.0
        for product, quantity, unit_price in lines:
            sale.lines.append(SaleLine(product_id=product.id, quantity=quantity, unit_price=unit_price))
            record_stock_out(
                user_id=user_id,
                branch_id=branch.id,
                product_id=product.id,
                quantity=quantity,
                movement_type=MOVEMENT_SALE,
                actor_id=actor_id,
                reference_type="SALE",
                reference_id=sale.id,
            )
            total += quantity * unit_price
        sale.total_amount = round(total, 2)
        if debtor is not None:
            debtor.amount_owed = round((debtor.amount_owed or 0) + sale.total_amount, 2)
        db.session.flush()
        return sale

    return run_with_retry(_op)


def count_sales_for_day(user_id: str, now: datetime | None = None) -> int:
    """Sales recorded in the current business-time-zone calendar day."""
    start, end = local_day_bounds(now or utcnow(), current_app.config["BUSINESS_TIMEZONE"])
    return Sale.query.filter(
        Sale.user_id == user_id,
        Sale.created_at >= start,
        Sale.created_at < end,
    ).count()


def create_debtor(user_id: str, data: dict) -> Debtor:
    """Gated by the `debtors` plan limit."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    name = require_str(data, "name")
    enforce_plan_limit(user_id, "debtors")
    debtor = Debtor(
        user_id=user_id,
        name=name,
        phone=optional_str(data, "phone"),
        amount_owed=coerce_amount(data.get("amountOwed", 0), "amountOwed"),
    )
    db.session.add(debtor)
    db.session.flush()
    return debtor


def list_debtors(user_id: str) -> list[Debtor]:
    return Debtor.query.filter_by(user_id=user_id).order_by(Debtor.name).all()
