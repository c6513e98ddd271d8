# Overview: Tenant ownership checks for lookups by id.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Debtor, Product, Sale, StaffMember, StockLevel, Subscription, Supplier


# Rows whose presence under a uid means that uid runs its own business
TENANT_OWNED_MODELS = (Branch, Product, StockLevel, Subscription, Supplier, Sale, Debtor, StaffMember)


def get_owned(model, entity_id: str | None, user_id: str, label: str):
    """
    Load an entity by id and require that it belongs to the tenant.

    MULTI-TENANT: a row owned by another tenant is reported exactly like a
    missing row so ids cannot be discovered across tenants.
    """
    if not entity_id:
        raise NotFoundError(f"{label} not found")
    entity = db.session.get(model, entity_id)
    if entity is None or entity.user_id != user_id:
        raise NotFoundError(f"{label} not found")
    return entity


def require_branch(user_id: str, branch_id: str | None, *, active: bool = False) -> Branch:
    branch = get_owned(Branch, branch_id, user_id, "Branch")
    if active and not branch.is_active:
        raise ValidationError(f"Branch {branch.name} is not active")
    return branch


def require_product(user_id: str, product_id: str | None) -> Product:
    return get_owned(Product, product_id, user_id, "Product")


def require_supplier(user_id: str, supplier_id: str | None) -> Supplier:
    return get_owned(Supplier, supplier_id, user_id, "Supplier")


def owns_tenant_data(uid: str) -> bool:
    """True when any tenant-scoped row is owned by `uid`."""
    return any(
        db.session.query(model.id).filter(model.user_id == uid).first() is not None
        for model in TENANT_OWNED_MODELS
    )
