# Overview: Branch management; the first branch is the tenant's main branch, further ones are plan-gated.

from __future__ import annotations

from ..errors import StateConflictError, ValidationError
from ..extensions import db
from ..models import Branch, BranchTransfer, LowStockAlert, Product, StockLevel
from ..validation import optional_str, require_str
from .plan_limits import enforce_plan_limit
from .tenant_service import require_branch


def create_branch(user_id: str, data: dict) -> Branch:
    """
    Create a branch.

    The tenant's first branch becomes the main branch and is available on
    every plan; each further branch counts against the `branches` limit.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    name = require_str(data, "name")
    code = (optional_str(data, "code") or name[:8]).upper()

    has_main = Branch.query.filter_by(user_id=user_id, is_main=True).first() is not None
    if has_main:
        enforce_plan_limit(user_id, "branches")

    if Branch.query.filter_by(user_id=user_id, code=code).first() is not None:
        raise ValidationError(f"Branch code {code} is already in use")

    branch = Branch(
        user_id=user_id,
        name=name,
        code=code,
        address=optional_str(data, "address"),
        phone=optional_str(data, "phone"),
        manager_id=optional_str(data, "managerId"),
        status="ACTIVE",
        is_main=not has_main,
    )
    db.session.add(branch)
    db.session.flush()
    return branch


def list_branches(user_id: str, include_inactive: bool = False) -> list[Branch]:
    query = Branch.query.filter_by(user_id=user_id)
    if not include_inactive:
        query = query.filter_by(status="ACTIVE")
    return query.order_by(Branch.is_main.desc(), Branch.name).all()


def get_branch(branch_id: str, user_id: str) -> Branch:
    return require_branch(user_id, branch_id)


def deactivate_branch(branch_id: str, user_id: str) -> Branch:
    """Refused for the main branch and while transfers out of the branch are open."""
    branch = require_branch(user_id, branch_id)
    if branch.is_main:
        raise StateConflictError("The main branch cannot be deactivated")
    open_transfers = BranchTransfer.query.filter(
        BranchTransfer.user_id == user_id,
        BranchTransfer.from_branch_id == branch.id,
        BranchTransfer.status.in_(("REQUESTED", "APPROVED")),
    ).count()
    if open_transfers:
        raise StateConflictError("Branch has pending outbound transfers")
    branch.status = "INACTIVE"
    db.session.flush()
    return branch


RECENT_TRANSFER_LIMIT = 10
TOP_BRANCH_LIMIT = 5


def get_branch_dashboard(user_id: str, branch_ids=None) -> dict:
    """
    Cross-branch overview: counts, inventory value, open transfers and the
    branches holding the most stock value. branch_ids limits it to those
    branches.
    """
    branches = Branch.query.filter_by(user_id=user_id).all()
    if branch_ids is not None:
        branches = [b for b in branches if b.id in branch_ids]
    visible = {b.id for b in branches}

    levels = [l for l in StockLevel.query.filter_by(user_id=user_id).all() if l.branch_id in visible]
    transfers = [
        t for t in BranchTransfer.query.filter_by(user_id=user_id)
        .order_by(BranchTransfer.created_at.desc())
        .all()
        if t.from_branch_id in visible or t.to_branch_id in visible
    ]
    low_stock_alerts = [
        a for a in LowStockAlert.query.filter_by(user_id=user_id, is_active=True).all()
        if a.branch_id in visible
    ]

    def _value(level):
        return (level.current_stock or 0) * (level.average_cost_price or 0)

    per_branch = []
    for branch in branches:
        branch_levels = [l for l in levels if l.branch_id == branch.id]
        per_branch.append({
            "branchId": branch.id,
            "branchName": branch.name,
            "inventoryValue": round(sum(_value(l) for l in branch_levels), 2),
            "productsCount": sum(1 for l in branch_levels if (l.current_stock or 0) > 0),
            "transfersIn": sum(1 for t in transfers if t.to_branch_id == branch.id),
            "transfersOut": sum(1 for t in transfers if t.from_branch_id == branch.id),
        })
    per_branch.sort(key=lambda row: row["inventoryValue"], reverse=True)

    return {
        "totalBranches": len(branches),
        "activeBranches": sum(1 for b in branches if b.is_active),
        "totalProducts": Product.query.filter_by(user_id=user_id, is_active=True).count(),
        "totalInventoryValue": round(sum(_value(l) for l in levels), 2),
        "lowStockAlerts": len(low_stock_alerts),
        "pendingTransfers": sum(1 for t in transfers if t.status == "REQUESTED"),
        "inTransitTransfers": sum(1 for t in transfers if t.status == "SHIPPED"),
        "recentTransfers": [t.to_dict() for t in transfers[:RECENT_TRANSFER_LIMIT]],
        "topPerformingBranches": per_branch[:TOP_BRANCH_LIMIT],
    }
