# backend/fahampesa/routes/products.py
"""
Product catalog routes. Creation is limited by the tenant's plan.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_access
from ..errors import FahamPesaError, error_response
from ..extensions import db
from ..services import product_service
from ..services.concurrency import commit_with_retry


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_access("inventory:read")
def list_products(access):
    products = product_service.list_products(access.tenant_id)
    return jsonify({"success": True, "products": [p.to_dict() for p in products]}), 200


@products_bp.post("")
@require_access("products:manage")
def create_product(access):
    """
    Request body:
    {
        "userId": str,
        "name": str,
        "sku": str (optional),
        "category": str (optional),
        "unit": str (optional, default "pcs"),
        "costPrice": number (optional),
        "sellingPrice": number (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        product = commit_with_retry(lambda: product_service.create_product(access.tenant_id, data))
        return jsonify({"success": True, "product": product.to_dict()}), 201
    except FahamPesaError as e:
        db.session.rollback()
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"success": False, "error": "Failed to create product"}), 500
