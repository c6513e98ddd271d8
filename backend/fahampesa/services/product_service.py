# Overview: Product catalog; creation is gated by the `products` plan limit.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Product
from ..validation import coerce_amount, optional_str, require_str
from .plan_limits import enforce_plan_limit
from .tenant_service import require_product


def create_product(user_id: str, data: dict) -> Product:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    name = require_str(data, "name")
    enforce_plan_limit(user_id, "products")

    product = Product(
        user_id=user_id,
        name=name,
        sku=optional_str(data, "sku"),
        category=optional_str(data, "category"),
        unit=optional_str(data, "unit") or "pcs",
        cost_price=coerce_amount(data.get("costPrice", 0), "costPrice"),
        selling_price=coerce_amount(data.get("sellingPrice", 0), "sellingPrice"),
        is_active=True,
    )
    db.session.add(product)
    db.session.flush()
    return product


def list_products(user_id: str) -> list[Product]:
    return Product.query.filter_by(user_id=user_id, is_active=True).order_by(Product.name).all()


def get_product(product_id: str, user_id: str) -> Product:
    return require_product(user_id, product_id)
