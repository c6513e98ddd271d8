# Overview: Staff accounts inside a tenant; role sets the default permission list.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import AccessDeniedError, StateConflictError, ValidationError
from ..extensions import db
from ..models import StaffActivityLog, StaffMember
from ..permissions import (
    PLATFORM_ONLY_PERMISSIONS,
    STAFF_ROLES,
    get_role_permissions,
    validate_permission_code,
)
from ..validation import coerce_list, optional_str, require_str
from .plan_limits import enforce_plan_limit
from .tenant_service import get_owned, owns_tenant_data, require_branch


STAFF_STATUSES = ("active", "inactive", "suspended")

ACTIVITY_SEVERITIES = ("info", "warning", "error", "critical")
DEFAULT_ACTIVITY_LIMIT = 100
MAX_ACTIVITY_LIMIT = 500


def create_staff_member(user_id: str, data: dict, *, actor_id: str | None = None) -> StaffMember:
    """
    Add a staff member to the tenant.

    Request data:
        authId, fullName, role (cashier/manager/owner), branchIds?, permissions?,
        email?, phone?

    Explicit permissions replace the role defaults and must be known codes
    an owner could hold; platform-only codes are refused.
    Gated by the `staff` plan limit.

    SECURITY: resolve_access treats any uid with a staff record as that
    tenant's employee, so the account being added must not run a business
    of its own (branches, products, stock, subscriptions and so on) and must
    not be the platform administrator.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    auth_id = require_str(data, "authId")
    full_name = require_str(data, "fullName")
    role = data.get("role", "cashier")
    if role not in STAFF_ROLES:
        raise ValidationError(f"Invalid role: {role}")
    if auth_id == user_id:
        raise ValidationError("An owner cannot be added as their own staff member")
    if auth_id == current_app.config.get("SUPER_ADMIN_UID"):
        raise ValidationError("The platform administrator cannot be added as staff")

    branch_ids = coerce_list(data.get("branchIds", []), "branchIds", allow_empty=True)
    for branch_id in branch_ids:
        require_branch(user_id, branch_id)

    permissions = data.get("permissions")
    if permissions is None:
        permissions = get_role_permissions(role)
    else:
        permissions = coerce_list(permissions, "permissions", allow_empty=True)
        unknown = [code for code in permissions if not validate_permission_code(code)]
        if unknown:
            raise ValidationError(f"Unknown permission: {', '.join(map(str, unknown))}")
        reserved = [code for code in permissions if code in PLATFORM_ONLY_PERMISSIONS]
        if reserved:
            raise ValidationError(f"Permission cannot be granted to staff: {', '.join(reserved)}")

    enforce_plan_limit(user_id, "staff")
    if StaffMember.query.filter_by(auth_id=auth_id).first() is not None:
        raise ValidationError("This account is already registered as staff")
    if owns_tenant_data(auth_id):
        raise ValidationError("This account already owns a business and cannot be added as staff")

    staff = StaffMember(
        auth_id=auth_id,
        user_id=user_id,
        full_name=full_name,
        email=optional_str(data, "email"),
        phone=optional_str(data, "phone"),
        role=role,
        branch_ids=list(branch_ids),
        permissions=list(dict.fromkeys(permissions)),
        status="active",
        two_factor_enabled=False,
        created_by=actor_id or user_id,
    )
    db.session.add(staff)
    db.session.flush()
    return staff


def list_staff(user_id: str) -> list[StaffMember]:
    return StaffMember.query.filter_by(user_id=user_id).order_by(StaffMember.full_name).all()


def get_staff_member(staff_id: str, user_id: str) -> StaffMember:
    return get_owned(StaffMember, staff_id, user_id, "Staff member")


def set_staff_status(staff_id: str, user_id: str, status: str) -> StaffMember:
    """
    Change a staff member's status. Re-activation counts against the plan,
    since inactive staff do not.
    """
    if status not in STAFF_STATUSES:
        raise ValidationError(f"Invalid status: {status}")
    staff = get_staff_member(staff_id, user_id)
    if staff.status == status:
        raise StateConflictError(f"Staff member is already {status}")
    if staff.status == "inactive":
        enforce_plan_limit(user_id, "staff")
    staff.status = status
    db.session.flush()
    return staff


# =============================================================================
# ACTIVITY LOG
# =============================================================================

@dataclass(frozen=True)
class ActivityLogFilter:
    """Optional criteria for list_activity_logs. Dates are UTC-naive, end exclusive."""
    staff_id: str | None = None
    branch_id: str | None = None
    severity: str | None = None
    action: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = DEFAULT_ACTIVITY_LIMIT


def record_activity(
    user_id: str,
    data: dict,
    *,
    actor_id: str | None = None,
    own_record_only: bool = False,
) -> StaffActivityLog:
    """
    Append an entry to a staff member's activity log.

    Request data:
        staffId, action, description, staffName?, branchId?, metadata? (object),
        severity? (info/warning/error/critical, default info)

    Args:
        own_record_only: the caller is a staff member and may only write
            entries about themself.

    Raises:
        ValidationError: missing fields, unknown severity, non-object metadata
        NotFoundError: staff member or branch missing or foreign
        AccessDeniedError: a staff caller writing about someone else
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    staff_id = require_str(data, "staffId")
    action = require_str(data, "action")
    description = require_str(data, "description")
    severity = data.get("severity") or "info"
    if severity not in ACTIVITY_SEVERITIES:
        raise ValidationError("Invalid severity. Must be info, warning, error, or critical")
    details = data.get("metadata")
    if details is not None and not isinstance(details, dict):
        raise ValidationError("metadata must be an object")

    staff = get_staff_member(staff_id, user_id)
    if own_record_only and staff.auth_id != actor_id:
        raise AccessDeniedError("Staff can only record their own activity")
    branch_id = data.get("branchId")
    if branch_id:
        require_branch(user_id, branch_id)

    entry = StaffActivityLog(
        user_id=user_id,
        staff_id=staff.id,
        staff_name=optional_str(data, "staffName") or staff.full_name,
        branch_id=branch_id or None,
        action=action,
        description=description,
        details=details,
        severity=severity,
        recorded_by=actor_id or user_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_activity_logs(user_id: str, filters: ActivityLogFilter | None = None) -> list[StaffActivityLog]:
    """Activity entries for the tenant, newest first."""
    filters = filters or ActivityLogFilter()
    if filters.severity and filters.severity not in ACTIVITY_SEVERITIES:
        raise ValidationError("Invalid severity. Must be info, warning, error, or critical")
    limit = filters.limit if filters.limit and filters.limit > 0 else DEFAULT_ACTIVITY_LIMIT
    limit = min(limit, MAX_ACTIVITY_LIMIT)

    query = StaffActivityLog.query.filter_by(user_id=user_id)
    if filters.staff_id:
        query = query.filter_by(staff_id=filters.staff_id)
    if filters.branch_id:
        query = query.filter_by(branch_id=filters.branch_id)
    if filters.severity:
        query = query.filter_by(severity=filters.severity)
    if filters.action:
        query = query.filter_by(action=filters.action)
    if filters.start_date:
        query = query.filter(StaffActivityLog.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(StaffActivityLog.created_at < filters.end_date)
    return query.order_by(StaffActivityLog.created_at.desc(), StaffActivityLog.id).limit(limit).all()
