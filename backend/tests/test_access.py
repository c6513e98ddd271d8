"""
Access resolution and route guard tests.

Verifies:
- Super admin, staff and owner resolution order
- Inactive or suspended staff are denied with no permissions
- Missing permissions return 403 and are written to security_events
- Staff are limited to their assigned branches
"""

import pytest

from conftest import OWNER_A, SUPER_ADMIN
from fahampesa.errors import AccessDeniedError, ValidationError
from fahampesa.models import SecurityEvent, StaffMember
from fahampesa.permissions import get_all_permission_codes, get_role_permissions
from fahampesa.services import staff_service
from fahampesa.services.access_service import (
    can_access_branch,
    has_permission,
    require_permission,
    require_super_admin,
    resolve_access,
)


# =============================================================================
# RESOLUTION
# =============================================================================


class TestResolveAccess:

    def test_super_admin_gets_everything(self, db_session):
        context = resolve_access(SUPER_ADMIN)
        assert context.is_super_admin
        assert context.permissions == frozenset(get_all_permission_codes())
        require_super_admin(context)

    def test_unknown_caller_is_owner_of_own_tenant(self, db_session):
        context = resolve_access(OWNER_A)
        assert context.role == "owner"
        assert context.tenant_id == OWNER_A
        assert not context.is_staff
        assert "subscriptions:manage" not in context.permissions
        assert set(context.permissions) == set(get_role_permissions("owner"))

    def test_owner_is_not_super_admin(self, db_session):
        with pytest.raises(AccessDeniedError):
            require_super_admin(resolve_access(OWNER_A))

    def test_active_staff_uses_stored_permissions(self, db_session, make_staff):
        make_staff("cashier-1", permissions=["inventory:read", "sales:create"])
        context = resolve_access("cashier-1")
        assert context.is_staff
        assert context.tenant_id == OWNER_A
        assert has_permission(context, "sales:create")
        assert not has_permission(context, "inventory:adjust")

    @pytest.mark.parametrize("status", ["inactive", "suspended"])
    def test_non_active_staff_unauthorized(self, db_session, make_staff, status):
        make_staff("cashier-1", status=status)
        context = resolve_access("cashier-1")
        assert context.authorized is False
        assert context.permissions == frozenset()
        assert context.reason == f"Staff account is {status}"
        assert not has_permission(context, "inventory:read")
        with pytest.raises(AccessDeniedError):
            require_permission(context, "inventory:read")

    def test_blank_user_id_rejected(self, db_session):
        with pytest.raises(ValidationError):
            resolve_access("   ")
        with pytest.raises(ValidationError):
            resolve_access(None)

    def test_staff_branch_scope(self, db_session, make_staff, main_branch, second_branch):
        make_staff("manager-1", role="manager", branch_ids=[second_branch.id])
        context = resolve_access("manager-1")
        assert can_access_branch(context, second_branch.id)
        assert not can_access_branch(context, main_branch.id)

    def test_owner_reaches_every_branch(self, db_session, main_branch, second_branch):
        context = resolve_access(OWNER_A)
        assert can_access_branch(context, main_branch.id)
        assert can_access_branch(context, second_branch.id)


# =============================================================================
# ROUTE GUARDS
# =============================================================================


class TestRouteGuards:

    def test_access_endpoint(self, client, db_session):
        resp = client.get(f"/api/access?userId={OWNER_A}")
        assert resp.status_code == 200
        assert resp.json["access"]["role"] == "owner"
        assert resp.json["access"]["tenantId"] == OWNER_A

    def test_missing_user_id_is_400(self, client, db_session):
        resp = client.get("/api/access")
        assert resp.status_code == 400
        assert resp.json["error"] == "userId is required"

    def test_missing_permission_is_403_and_logged(self, client, db_session, make_staff, main_branch, second_branch):
        make_staff("cashier-1")
        resp = client.post("/api/transfers", json={
            "userId": "cashier-1",
            "fromBranchId": main_branch.id,
            "toBranchId": second_branch.id,
            "items": [],
        })
        assert resp.status_code == 403
        assert resp.json["error"] == "Permission denied"
        assert resp.json["required_permission"] == "transfers:create"

        event = SecurityEvent.query.filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == "cashier-1"
        assert event.tenant_id == OWNER_A
        assert event.success is False

    def test_suspended_staff_is_403(self, client, db_session, make_staff):
        make_staff("cashier-1", status="suspended")
        resp = client.get("/api/inventory/stock?userId=cashier-1")
        assert resp.status_code == 403
        assert resp.json["message"] == "Staff account is suspended"
        assert SecurityEvent.query.filter_by(event_type="INACTIVE_STAFF_DENIED").count() == 1

    def test_staff_outside_branch_is_403(self, client, db_session, make_staff, stock, main_branch, second_branch, product):
        make_staff("manager-1", role="manager", branch_ids=[second_branch.id])
        resp = client.post("/api/inventory/stock/adjust", json={
            "userId": "manager-1",
            "productId": product.id,
            "branchId": main_branch.id,
            "quantity": -1,
            "reason": "Damaged",
        })
        assert resp.status_code == 403
        assert resp.json["error"] == "You do not have access to this branch"

    def test_staff_acts_on_employer_tenant(self, client, db_session, make_staff, stock, main_branch, product):
        make_staff("manager-1", role="manager", branch_ids=[main_branch.id])
        resp = client.post("/api/inventory/stock/adjust", json={
            "userId": "manager-1",
            "productId": product.id,
            "branchId": main_branch.id,
            "quantity": 4,
            "reason": "Found in store room",
        })
        assert resp.status_code == 200
        assert resp.json["stockLevel"]["currentStock"] == 24
        assert resp.json["movement"]["actorId"] == "manager-1"


# =============================================================================
# GRANTING PERMISSIONS
# =============================================================================


class TestStaffGrants:

    @pytest.fixture
    def pro(self, db_session, make_pro):
        return make_pro(OWNER_A)

    @pytest.mark.parametrize("code", ["subscriptions:manage", "admin:manage"])
    def test_platform_permissions_cannot_be_granted(self, pro, code):
        with pytest.raises(ValidationError) as exc_info:
            staff_service.create_staff_member(OWNER_A, {
                "authId": "manager-1",
                "fullName": "Otieno",
                "role": "manager",
                "permissions": ["inventory:read", code],
            })
        assert str(exc_info.value) == f"Permission cannot be granted to staff: {code}"
        assert StaffMember.query.count() == 0

    def test_unknown_permission_rejected(self, pro):
        with pytest.raises(ValidationError) as exc_info:
            staff_service.create_staff_member(OWNER_A, {
                "authId": "manager-1", "fullName": "Otieno", "permissions": ["stock:steal"],
            })
        assert str(exc_info.value) == "Unknown permission: stock:steal"

    def test_super_admin_cannot_be_enrolled(self, pro):
        with pytest.raises(ValidationError) as exc_info:
            staff_service.create_staff_member(OWNER_A, {"authId": SUPER_ADMIN, "fullName": "Platform"})
        assert str(exc_info.value) == "The platform administrator cannot be added as staff"

    def test_platform_permission_over_http_is_400(self, client, pro):
        resp = client.post("/api/staff", json={
            "userId": OWNER_A,
            "authId": "manager-1",
            "fullName": "Otieno",
            "permissions": ["subscriptions:manage"],
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Permission cannot be granted to staff: subscriptions:manage"
        assert StaffMember.query.count() == 0

    def test_explicit_permissions_replace_role_defaults(self, pro):
        staff = staff_service.create_staff_member(OWNER_A, {
            "authId": "cashier-1",
            "fullName": "Amina",
            "permissions": ["inventory:read", "inventory:read", "sales:create"],
        })
        assert staff.permissions == ["inventory:read", "sales:create"]


class TestPermissionCatalogue:

    def test_grouped_by_category(self, client, db_session):
        resp = client.get(f"/api/permissions?userId={OWNER_A}")
        assert resp.status_code == 200
        codes = {
            entry["code"]: entry["assignable"]
            for entries in resp.json["categories"].values()
            for entry in entries
        }
        assert set(codes) == set(get_all_permission_codes())
        assert codes["subscriptions:manage"] is False
        assert codes["admin:manage"] is False
        assert codes["inventory:read"] is True

    def test_single_code(self, client, db_session):
        resp = client.get(f"/api/permissions?userId={OWNER_A}&code=transfers:receive")
        assert resp.status_code == 200
        assert resp.json["permission"]["code"] == "transfers:receive"
        assert resp.json["permission"]["assignable"] is True

    def test_unknown_code_is_404(self, client, db_session):
        resp = client.get(f"/api/permissions?userId={OWNER_A}&code=nope:nothing")
        assert resp.status_code == 404
        assert resp.json["error"] == "Permission not found"

    def test_cashier_cannot_list(self, client, db_session, make_staff):
        make_staff("cashier-1")
        resp = client.get("/api/permissions?userId=cashier-1")
        assert resp.status_code == 403
