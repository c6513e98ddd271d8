# Overview: Resolves who a caller is (super-admin, staff member or owner) and what they may do.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import AccessDeniedError, AccessResolutionError, ValidationError
from ..extensions import db
from ..models import SecurityEvent, StaffMember
from ..permissions import (
    ROLE_OWNER,
    ROLE_SUPER_ADMIN,
    get_all_permission_codes,
    get_role_permissions,
)


@dataclass(frozen=True)
class AccessContext:
    """
    Resolved access for one caller.

    tenant_id is the account whose data the caller works on: the caller's own
    uid for owners and super-admins, the employer's uid for staff.
    """
    user_id: str
    tenant_id: str | None
    role: str
    permissions: frozenset = field(default_factory=frozenset)
    authorized: bool = True
    staff_id: str | None = None
    branch_ids: tuple = ()
    reason: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_staff(self) -> bool:
        return self.staff_id is not None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "tenantId": self.tenant_id,
            "role": self.role,
            "permissions": sorted(self.permissions),
            "authorized": self.authorized,
            "isSuperAdmin": self.is_super_admin,
            "isStaff": self.is_staff,
            "staffId": self.staff_id,
            "branchIds": list(self.branch_ids),
            "reason": self.reason,
        }


def resolve_access(user_id: str | None, *, super_admin_uid: str | None = None) -> AccessContext:
    """
    Resolve the role and permission set for a caller.

    Resolution order:
    1. The configured super-admin uid gets every permission, unconditionally.
    2. A staff record keyed by the caller's auth uid: its role and stored
       permission list apply, but only while its status is "active".
    3. Anyone else is an account owner acting on their own tenant.

    Args:
        user_id: Caller uid.
        super_admin_uid: Override for the configured SUPER_ADMIN_UID.

    Returns:
        AccessContext. Never raises for an unknown caller.

    Raises:
        ValidationError: user_id missing or blank.
        AccessResolutionError: the staff store could not be read.
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("userId is required")
    user_id = user_id.strip()

    if super_admin_uid is None:
        super_admin_uid = current_app.config.get("SUPER_ADMIN_UID") or ""
    if super_admin_uid and user_id == super_admin_uid:
        return AccessContext(
            user_id=user_id,
            tenant_id=user_id,
            role=ROLE_SUPER_ADMIN,
            permissions=frozenset(get_all_permission_codes()),
        )

    try:
        staff = StaffMember.query.filter_by(auth_id=user_id).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise AccessResolutionError("Unable to resolve access") from exc

    if staff is None:
        return AccessContext(
            user_id=user_id,
            tenant_id=user_id,
            role=ROLE_OWNER,
            permissions=frozenset(get_role_permissions(ROLE_OWNER)),
        )

    if staff.status != "active":
        return AccessContext(
            user_id=user_id,
            tenant_id=staff.user_id,
            role=staff.role,
            permissions=frozenset(),
            authorized=False,
            staff_id=staff.id,
            branch_ids=tuple(staff.branch_ids or ()),
            reason=f"Staff account is {staff.status}",
        )

    return AccessContext(
        user_id=user_id,
        tenant_id=staff.user_id,
        role=staff.role,
        permissions=frozenset(staff.permissions or ()),
        staff_id=staff.id,
        branch_ids=tuple(staff.branch_ids or ()),
    )


def has_permission(context: AccessContext, permission: str) -> bool:
    """Exact membership check. Unauthorized contexts hold nothing."""
    return context.authorized and permission in context.permissions


def can_access_branch(context: AccessContext, branch_id: str) -> bool:
    """Owners and super-admins reach every branch; staff only their assigned ones."""
    if not context.authorized:
        return False
    if not context.is_staff or context.role == ROLE_OWNER:
        return True
    return branch_id in context.branch_ids


def require_permission(context: AccessContext, permission: str) -> None:
    if not context.authorized:
        raise AccessDeniedError(context.reason or "Access denied")
    if permission not in context.permissions:
        raise AccessDeniedError(f"Missing permission: {permission}")


def require_branch_access(context: AccessContext, branch_id: str) -> None:
    if not can_access_branch(context, branch_id):
        raise AccessDeniedError("You do not have access to this branch")


def require_super_admin(context: AccessContext) -> None:
    if not context.is_super_admin:
        raise AccessDeniedError("Super admin access required")


def log_security_event(
    user_id: str | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    tenant_id: str | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    event_type examples:
    - PERMISSION_DENIED
    - ACCESS_RESOLUTION_FAILED
    - INACTIVE_STAFF_DENIED
    - PLAN_FEATURE_DENIED
    - SUBSCRIPTION_ACTIVATED / SUBSCRIPTION_EXTENDED / SUBSCRIPTION_REVOKED

    With commit=False the event joins the caller's transaction instead.
    """
    event = SecurityEvent(
        user_id=user_id,
        tenant_id=tenant_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event


def branch_scope(context: AccessContext) -> tuple | None:
    """Branch ids the caller is limited to, or None when every branch is reachable."""
    if not context.is_staff or context.role == ROLE_OWNER:
        return None
    return tuple(context.branch_ids)
