"""
HTTP surface tests.

Status codes and error bodies for the main routes: validation errors are
400, missing or foreign entities 404, permission and plan denials 403.
"""

from datetime import timedelta

import pytest

from conftest import OWNER_A, OWNER_B, SUPER_ADMIN
from fahampesa.models import Branch, SecurityEvent
from fahampesa.services import audit_service, subscription_service, transfer_service
from fahampesa.time_utils import to_utc_z, utcnow


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] in ("healthy", "degraded")

    def test_version(self, client):
        resp = client.get("/api/version")
        assert resp.status_code == 200
        assert resp.json["api_version"]


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventoryRoutes:

    def _adjust(self, client, url, user_id, product, branch, quantity):
        return client.post(url, json={
            "userId": user_id,
            "productId": product.id,
            "branchId": branch.id,
            "quantity": quantity,
            "reason": "Damaged",
        })

    @pytest.mark.parametrize("url", ["/api/inventory/stock/adjust", "/api/stock/adjust"])
    def test_adjust(self, client, db_session, stock, product, main_branch, url):
        resp = self._adjust(client, url, OWNER_A, product, main_branch, -5)
        assert resp.status_code == 200
        assert resp.json["success"] is True
        assert resp.json["stockLevel"]["currentStock"] == 15

    def test_adjust_insufficient_is_400(self, client, db_session, stock, product, main_branch):
        resp = self._adjust(client, "/api/stock/adjust", OWNER_A, product, main_branch, -25)
        assert resp.status_code == 400
        assert resp.json["error"].startswith("Insufficient stock")

    def test_adjust_missing_record_is_404(self, client, db_session, product, main_branch):
        resp = self._adjust(client, "/api/stock/adjust", OWNER_A, product, main_branch, 1)
        assert resp.status_code == 404
        assert resp.json["error"] == "Stock record not found"

    def test_adjust_other_tenant_is_404(self, client, db_session, stock, product, main_branch):
        resp = self._adjust(client, "/api/stock/adjust", OWNER_B, product, main_branch, -1)
        assert resp.status_code == 404

    def test_stock_listing_scoped(self, client, db_session, stock, make_stock, product_b, branch_b):
        make_stock(product_b, branch_b)
        resp = client.get(f"/api/inventory/stock?userId={OWNER_A}")
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json["stockLevels"]] == [stock.id]

    def test_single_stock_level(self, client, db_session, stock, product, main_branch):
        resp = client.get(f"/api/inventory/stock/{main_branch.id}/{product.id}?userId={OWNER_A}")
        assert resp.status_code == 200
        assert resp.json["stockLevel"]["currentStock"] == 20

        resp = client.get(f"/api/inventory/stock/{main_branch.id}/{product.id}?userId={OWNER_B}")
        assert resp.status_code == 404

    def test_movements_bad_date_is_400(self, client, db_session):
        resp = client.get(f"/api/inventory/movements?userId={OWNER_A}&startDate=yesterday")
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid startDate format"

    def test_alert_generation_and_listing(self, client, db_session, make_stock, product, main_branch):
        make_stock(product, main_branch, current=2, reorder_point=5)

        resp = client.post("/api/inventory/alerts/generate", json={"userId": OWNER_A})
        assert resp.status_code == 200
        assert resp.json["alertCount"] == 1

        resp = client.get(f"/api/inventory/alerts?userId={OWNER_A}")
        alert = resp.json["lowStockAlerts"][0]
        assert alert["shortage"] == 3

        resp = client.post(f"/api/inventory/alerts/{alert['id']}/acknowledge", json={
            "userId": OWNER_A, "alertType": "low_stock",
        })
        assert resp.status_code == 200
        assert resp.json["alert"]["acknowledgedBy"] == OWNER_A

    def test_audit_reconcile_over_http(self, client, db_session, stock, product, main_branch):
        resp = client.post("/api/inventory/audits", json={"userId": OWNER_A, "branchId": main_branch.id})
        assert resp.status_code == 201
        audit_id = resp.json["audit"]["id"]

        resp = client.post("/api/inventory/audits/reconcile", json={
            "userId": OWNER_A,
            "auditId": audit_id,
            "items": [{"productId": product.id, "physicalStock": 18}],
        })
        assert resp.status_code == 200
        assert resp.json["audit"]["status"] == "COMPLETED"
        assert resp.json["audit"]["productsWithDiscrepancy"] == 1

    def test_staff_cannot_touch_audit_at_other_branch(
        self, client, db_session, make_staff, make_stock, product, main_branch, second_branch
    ):
        level = make_stock(product, second_branch)
        make_staff("manager-1", role="manager", branch_ids=[main_branch.id])
        audit = audit_service.create_stock_audit(OWNER_A, second_branch.id)
        db_session.commit()

        resp = client.get("/api/inventory/audits?userId=manager-1")
        assert resp.status_code == 200
        assert resp.json["audits"] == []

        resp = client.post(f"/api/inventory/audits/{audit.id}/status", json={
            "userId": "manager-1", "status": "IN_PROGRESS",
        })
        assert resp.status_code == 403
        assert resp.json["error"] == "You do not have access to this branch"

        resp = client.post("/api/inventory/audits/reconcile", json={
            "userId": "manager-1",
            "auditId": audit.id,
            "items": [{"productId": product.id, "physicalStock": 3}],
        })
        assert resp.status_code == 403

        db_session.expire_all()
        assert level.current_stock == 20
        assert audit.status == "PLANNED"

    def test_staff_cannot_touch_alerts_at_other_branch(
        self, client, db_session, make_staff, make_stock, product, main_branch, second_branch
    ):
        make_stock(product, second_branch, current=2, reorder_point=5)
        make_staff("manager-1", role="manager", branch_ids=[main_branch.id])
        resp = client.post("/api/inventory/alerts/generate", json={"userId": OWNER_A})
        alert_id = resp.json["alerts"][0]["id"]

        resp = client.get("/api/inventory/alerts?userId=manager-1")
        assert resp.json["lowStockAlerts"] == []

        resp = client.post("/api/inventory/alerts/generate", json={
            "userId": "manager-1", "branchId": second_branch.id,
        })
        assert resp.status_code == 403

        resp = client.post(f"/api/inventory/alerts/{alert_id}/acknowledge", json={
            "userId": "manager-1", "alertType": "low_stock",
        })
        assert resp.status_code == 403

        resp = client.post("/api/inventory/alerts/expiry", json={
            "userId": "manager-1",
            "productId": product.id,
            "branchId": second_branch.id,
            "expiryDate": to_utc_z(utcnow() + timedelta(days=10)),
        })
        assert resp.status_code == 403

        resp = client.get(f"/api/inventory/alerts?userId={OWNER_A}")
        assert resp.json["lowStockAlerts"][0]["acknowledgedBy"] is None
        assert resp.json["expiryAlerts"] == []


# =============================================================================
# TRANSFERS
# =============================================================================


class TestTransferRoutes:

    def test_lifecycle(self, client, db_session, stock, product, main_branch, second_branch):
        resp = client.post("/api/transfers", json={
            "userId": OWNER_A,
            "fromBranchId": main_branch.id,
            "toBranchId": second_branch.id,
            "items": [{"productId": product.id, "quantity": 4}],
        })
        assert resp.status_code == 201
        transfer_id = resp.json["transfer"]["id"]

        resp = client.post(f"/api/transfers/{transfer_id}/approve", json={"userId": OWNER_A})
        assert resp.status_code == 200

        resp = client.post(f"/api/transfers/{transfer_id}/ship", json={
            "userId": OWNER_A,
            "shippedBy": "Otieno",
            "estimatedArrival": to_utc_z(utcnow() - timedelta(hours=1)),
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Estimated arrival date must be in the future"

        resp = client.post(f"/api/transfers/{transfer_id}/ship", json={"userId": OWNER_A, "shippedBy": "Otieno"})
        assert resp.status_code == 200
        assert resp.json["transfer"]["status"] == "SHIPPED"

        resp = client.post(f"/api/transfers/{transfer_id}/receive", json={"userId": OWNER_A})
        assert resp.status_code == 200
        assert resp.json["transfer"]["status"] == "RECEIVED"

    def test_same_branch_is_400(self, client, db_session, stock, product, main_branch):
        resp = client.post("/api/transfers", json={
            "userId": OWNER_A,
            "fromBranchId": main_branch.id,
            "toBranchId": main_branch.id,
            "items": [{"productId": product.id, "quantity": 1}],
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Source and destination branches must be different"

    def test_unknown_transfer_is_404(self, client, db_session):
        resp = client.post("/api/transfers/missing/approve", json={"userId": OWNER_A})
        assert resp.status_code == 404
        assert resp.json["error"] == "Transfer not found"

    def test_non_boolean_approved_is_400(self, client, db_session):
        resp = client.post("/api/transfers/any/approve", json={"userId": OWNER_A, "approved": "no"})
        assert resp.status_code == 400

    @pytest.fixture
    def requested(self, db_session, stock, product, main_branch, second_branch):
        transfer = transfer_service.create_branch_transfer(
            OWNER_A, main_branch.id, second_branch.id, [{"productId": product.id, "quantity": 4}],
        )
        db_session.commit()
        return transfer

    def test_receiving_cashier_can_read(self, client, requested, make_staff, second_branch):
        make_staff("cashier-1", branch_ids=[second_branch.id])

        resp = client.get(f"/api/transfers/{requested.id}?userId=cashier-1")
        assert resp.status_code == 200
        assert resp.json["transfer"]["id"] == requested.id

        resp = client.get("/api/transfers?userId=cashier-1")
        assert resp.status_code == 200
        assert [t["id"] for t in resp.json["transfers"]] == [requested.id]

    def test_cashier_at_unrelated_branch_cannot_read(self, client, db_session, requested, make_staff):
        kisumu = Branch(user_id=OWNER_A, name="Kisumu", code="KSM", status="ACTIVE", is_main=False)
        db_session.add(kisumu)
        db_session.commit()
        make_staff("cashier-2", branch_ids=[kisumu.id])

        resp = client.get(f"/api/transfers/{requested.id}?userId=cashier-2")
        assert resp.status_code == 403
        assert resp.json["error"] == "You do not have access to this branch"

        resp = client.get("/api/transfers?userId=cashier-2")
        assert resp.json["transfers"] == []

    def test_reading_needs_a_transfer_permission(self, client, requested, make_staff, second_branch):
        make_staff("cashier-3", permissions=["sales:create"], branch_ids=[second_branch.id])
        resp = client.get(f"/api/transfers/{requested.id}?userId=cashier-3")
        assert resp.status_code == 403
        assert resp.json["required_permissions"] == [
            "transfers:create", "transfers:approve", "transfers:ship", "transfers:receive",
        ]

    def test_cancel_with_put(self, client, requested):
        resp = client.put(f"/api/transfers/{requested.id}", json={
            "userId": OWNER_A, "action": "cancel", "reason": "Raised twice",
        })
        assert resp.status_code == 200
        assert resp.json["transfer"]["status"] == "REJECTED"
        assert resp.json["transfer"]["rejectionReason"] == "Raised twice"

        resp = client.put(f"/api/transfers/{requested.id}", json={"userId": OWNER_A, "action": "cancel"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Only requested or approved transfers can be cancelled"

    def test_put_with_other_action_is_400(self, client, requested):
        resp = client.put(f"/api/transfers/{requested.id}", json={"userId": OWNER_A, "action": "ship"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid action. Use specific endpoints for approve, ship, or receive actions."
        assert requested.status == "REQUESTED"


# =============================================================================
# PURCHASE ORDERS
# =============================================================================


class TestPurchaseOrderRoutes:

    def test_self_approval_is_400(self, client, db_session, supplier, main_branch, product):
        resp = client.post("/api/purchase-orders", json={
            "userId": OWNER_A,
            "supplierId": supplier.id,
            "branchId": main_branch.id,
            "items": [{"productId": product.id, "quantityOrdered": 5, "unitCost": 45}],
        })
        assert resp.status_code == 201
        po_id = resp.json["purchaseOrder"]["id"]

        resp = client.post(f"/api/purchase-orders/{po_id}/submit", json={"userId": OWNER_A})
        assert resp.status_code == 200

        resp = client.post(f"/api/purchase-orders/{po_id}/approve", json={"userId": OWNER_A, "approved": True})
        assert resp.status_code == 400
        assert resp.json["error"] == "You cannot approve your own purchase order"

    def test_manager_approves_owner_order(self, client, db_session, supplier, main_branch, product, make_staff):
        make_staff("manager-1", role="manager", branch_ids=[main_branch.id])
        resp = client.post("/api/purchase-orders", json={
            "userId": OWNER_A,
            "supplierId": supplier.id,
            "branchId": main_branch.id,
            "items": [{"productId": product.id, "quantityOrdered": 5}],
        })
        po_id = resp.json["purchaseOrder"]["id"]
        client.post(f"/api/purchase-orders/{po_id}/submit", json={"userId": OWNER_A})

        resp = client.post(f"/api/purchase-orders/{po_id}/approve", json={"userId": "manager-1", "approved": True})
        assert resp.status_code == 200
        assert resp.json["purchaseOrder"]["status"] == "APPROVED"
        assert resp.json["purchaseOrder"]["approvedBy"] == "manager-1"


# =============================================================================
# PLAN GATES
# =============================================================================


class TestPlanGates:

    def test_product_limit_is_403_with_plan_check(self, client, db_session, make_products):
        make_products(OWNER_A, 10)
        resp = client.post("/api/products", json={"userId": OWNER_A, "name": "Chumvi"})
        assert resp.status_code == 403
        assert resp.json["success"] is False
        assert resp.json["planCheck"]["limitReached"] is True
        assert resp.json["planCheck"]["currentUsage"] == 10

    def test_reports_need_pro(self, client, db_session, stock, make_pro):
        resp = client.get(f"/api/reports/inventory-value?userId={OWNER_A}")
        assert resp.status_code == 403
        assert resp.json["planCheck"]["feature"] == "reports"
        assert SecurityEvent.query.filter_by(event_type="PLAN_FEATURE_DENIED").count() == 1

        make_pro(OWNER_A)
        resp = client.get(f"/api/reports/inventory-value?userId={OWNER_A}")
        assert resp.status_code == 200
        assert resp.json["report"]["totalValue"] == 1000.0

    def test_plan_check_endpoint(self, client, db_session):
        resp = client.get(f"/api/plan/check?userId={OWNER_A}&feature=staff")
        assert resp.status_code == 200
        assert resp.json["planCheck"]["allowed"] is False

        resp = client.get(f"/api/plan/check?userId={OWNER_A}&feature=warehouses")
        assert resp.status_code == 400

    def test_plan_limits_endpoint(self, client, db_session, make_pro):
        make_pro(OWNER_A)
        resp = client.get(f"/api/plan/limits?userId={OWNER_A}")
        assert resp.json["tier"] == "pro"
        assert resp.json["limits"]["branches"] == "unlimited"


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================


class TestSubscriptionRoutes:

    @pytest.fixture
    def pending(self, db_session):
        subscription = subscription_service.create_pending_subscription(OWNER_A, "monthly")
        db_session.commit()
        return subscription

    def test_status_requires_id(self, client, db_session):
        resp = client.get("/api/mpesa/status")
        assert resp.status_code == 400
        assert resp.json["error"] == "subscriptionId or checkoutRequestId is required"

    def test_status_unknown_is_404(self, client, db_session):
        resp = client.get("/api/mpesa/status?subscriptionId=missing")
        assert resp.status_code == 404
        assert resp.json["error"] == "Subscription not found"

    def test_status_pending(self, client, pending):
        resp = client.get(f"/api/mpesa/status?subscriptionId={pending.id}")
        assert resp.status_code == 200
        assert resp.json["status"] == "pending"
        assert resp.json["planType"] == "monthly"

    def test_status_by_checkout_request_id(self, client, db_session):
        subscription_service.create_pending_subscription(OWNER_A, "monthly", checkout_request_id="ws_CO_123")
        db_session.commit()

        resp = client.get("/api/mpesa/status?checkoutRequestId=ws_CO_123")
        assert resp.status_code == 200
        assert resp.json["status"] == "pending"

        resp = client.get("/api/mpesa/status?checkoutRequestId=ws_CO_999")
        assert resp.status_code == 404

    def test_owner_cannot_activate(self, client, pending):
        resp = client.post("/api/admin/subscriptions/activate", json={
            "userId": OWNER_A, "subscriptionId": pending.id,
        })
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "subscriptions:manage"

    def test_super_admin_activates(self, client, pending):
        resp = client.post("/api/admin/subscriptions/activate", json={
            "userId": SUPER_ADMIN, "subscriptionId": pending.id, "transactionId": "QKT999",
        })
        assert resp.status_code == 200
        assert resp.json["subscription"]["status"] == "active"

        event = SecurityEvent.query.filter_by(event_type="SUBSCRIPTION_ACTIVATED").one()
        assert event.tenant_id == OWNER_A
        assert event.user_id == SUPER_ADMIN

        resp = client.post("/api/admin/subscriptions/activate", json={
            "userId": SUPER_ADMIN, "subscriptionId": pending.id,
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Subscription is already active"

    def test_checkout_and_listing(self, client, db_session):
        resp = client.post("/api/subscriptions", json={"userId": OWNER_A, "planType": "yearly"})
        assert resp.status_code == 201
        assert resp.json["subscription"]["amount"] == 20000

        resp = client.get(f"/api/subscriptions?userId={OWNER_A}")
        assert resp.status_code == 200
        assert resp.json["tier"] == "free"
        assert resp.json["activeSubscription"] is None
        assert len(resp.json["subscriptions"]) == 1


# =============================================================================
# SALES
# =============================================================================


class TestSalesRoutes:

    def _sell(self, client, product, branch, quantity):
        return client.post("/api/sales", json={
            "userId": OWNER_A,
            "branchId": branch.id,
            "lines": [{"productId": product.id, "quantity": quantity}],
        })

    def test_sale_counts_toward_today(self, client, db_session, stock, product, main_branch):
        resp = self._sell(client, product, main_branch, 2)
        assert resp.status_code == 201

        resp = client.get(f"/api/sales/today?userId={OWNER_A}")
        assert resp.json["count"] == 1
        assert stock.current_stock == 18

    def test_insufficient_stock_is_400(self, client, db_session, stock, product, main_branch):
        resp = self._sell(client, product, main_branch, 21)
        assert resp.status_code == 400

        resp = client.get(f"/api/sales/today?userId={OWNER_A}")
        assert resp.json["count"] == 0


# =============================================================================
# DASHBOARDS
# =============================================================================


class TestPurchasingDashboards:

    def _order(self, client, supplier, branch, product, user_id=OWNER_A, **extra):
        resp = client.post("/api/purchase-orders", json={
            "userId": user_id,
            "supplierId": supplier.id,
            "branchId": branch.id,
            "items": [{"productId": product.id, "quantityOrdered": 5, "unitCost": 40}],
            **extra,
        })
        assert resp.status_code == 201
        return resp.json["purchaseOrder"]["id"]

    def test_put_submits_order(self, client, db_session, supplier, main_branch, product):
        po_id = self._order(client, supplier, main_branch, product)

        resp = client.put(f"/api/purchase-orders/{po_id}", json={"userId": OWNER_A, "action": "approve"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid action"

        resp = client.put(f"/api/purchase-orders/{po_id}", json={"userId": OWNER_A, "action": "submit"})
        assert resp.status_code == 200
        assert resp.json["purchaseOrder"]["status"] == "PENDING"

    def test_purchase_order_dashboard(self, client, db_session, supplier, main_branch, product):
        po_id = self._order(client, supplier, main_branch, product)
        client.post(f"/api/purchase-orders/{po_id}/submit", json={"userId": OWNER_A})

        resp = client.get(f"/api/purchase-orders/dashboard?userId={OWNER_A}&includeDetails=true")
        assert resp.status_code == 200
        dashboard = resp.json["dashboard"]
        assert dashboard["totalOrders"] == 1
        assert dashboard["pendingOrders"] == 1
        assert [po["id"] for po in dashboard["pendingApprovalsList"]] == [po_id]
        assert dashboard["overdueOrdersList"] == []

    def test_dashboard_for_branch_manager(self, client, db_session, supplier, main_branch, second_branch, product, make_staff):
        self._order(client, supplier, main_branch, product)
        self._order(client, supplier, second_branch, product)
        make_staff("manager-1", role="manager", branch_ids=[second_branch.id])

        resp = client.get("/api/purchase-orders/dashboard?userId=manager-1")
        assert resp.json["dashboard"]["totalOrders"] == 1

        resp = client.get("/api/suppliers/dashboard?userId=manager-1")
        assert resp.status_code == 200
        assert len(resp.json["dashboard"]["recentOrders"]) == 1
        assert resp.json["dashboard"]["topSuppliers"][0]["totalOrders"] == 2

    def test_staff_cannot_open_order_at_other_branch(self, client, db_session, supplier, main_branch, second_branch, product, make_staff):
        po_id = self._order(client, supplier, main_branch, product)
        make_staff("manager-1", role="manager", branch_ids=[second_branch.id])

        resp = client.get(f"/api/purchase-orders/{po_id}?userId=manager-1")
        assert resp.status_code == 403

        resp = client.get("/api/purchase-orders?userId=manager-1")
        assert resp.json["purchaseOrders"] == []

    def test_supplier_performance(self, client, db_session, supplier):
        url = f"/api/suppliers/{supplier.id}/performance"

        resp = client.put(url, json={"userId": OWNER_A, "qualityRating": 9})
        assert resp.status_code == 400
        assert resp.json["error"] == "qualityRating must be between 1 and 5"

        resp = client.put(url, json={"userId": OWNER_A, "qualityRating": 4, "onTimeDelivery": False, "deliveryDays": 3})
        assert resp.status_code == 200
        assert resp.json["supplier"]["qualityRating"] == 4
        assert resp.json["supplier"]["onTimeDeliveryRate"] == 0

        resp = client.get(f"{url}?userId={OWNER_A}")
        assert resp.status_code == 200
        assert resp.json["performance"]["supplierName"] == "Bidco Distributors"
        assert resp.json["performance"]["averageDeliveryDays"] == 3

        resp = client.get(f"{url}?userId={OWNER_B}")
        assert resp.status_code == 404


class TestBranchDashboard:

    def test_overview(self, client, db_session, stock, make_stock, product, other_product, main_branch, second_branch):
        make_stock(other_product, second_branch, current=4, average_cost=100)
        make_stock(product, second_branch, current=0)
        client.post("/api/transfers", json={
            "userId": OWNER_A,
            "fromBranchId": main_branch.id,
            "toBranchId": second_branch.id,
            "items": [{"productId": product.id, "quantity": 2}],
        })

        resp = client.get(f"/api/branches/dashboard?userId={OWNER_A}")
        assert resp.status_code == 200
        dashboard = resp.json["dashboard"]
        assert dashboard["totalBranches"] == 2
        assert dashboard["activeBranches"] == 2
        assert dashboard["totalInventoryValue"] == 1400.0
        assert dashboard["pendingTransfers"] == 1
        assert dashboard["inTransitTransfers"] == 0
        assert len(dashboard["recentTransfers"]) == 1

        top = dashboard["topPerformingBranches"]
        assert [row["branchId"] for row in top] == [main_branch.id, second_branch.id]
        assert top[0]["inventoryValue"] == 1000.0
        assert top[0]["transfersOut"] == 1
        assert top[1]["productsCount"] == 1
        assert top[1]["transfersIn"] == 1

    def test_other_tenant_sees_nothing(self, client, db_session, stock):
        resp = client.get(f"/api/branches/dashboard?userId={OWNER_B}")
        assert resp.json["dashboard"]["totalBranches"] == 0
        assert resp.json["dashboard"]["totalInventoryValue"] == 0

    def test_cashier_is_403(self, client, db_session, make_staff):
        make_staff("cashier-1")
        resp = client.get("/api/branches/dashboard?userId=cashier-1")
        assert resp.status_code == 403


# =============================================================================
# STAFF ACTIVITY
# =============================================================================


class TestStaffActivityLog:

    @pytest.fixture
    def cashier(self, make_staff, main_branch):
        return make_staff("cashier-1", branch_ids=[main_branch.id])

    def _log(self, client, user_id, staff, **extra):
        return client.post("/api/staff/logs", json={
            "userId": user_id,
            "staffId": staff.id,
            "action": "SALE_VOIDED",
            "description": "Voided receipt 0042",
            **extra,
        })

    def test_owner_records_and_lists(self, client, db_session, cashier, main_branch):
        resp = self._log(client, OWNER_A, cashier, branchId=main_branch.id,
                         severity="warning", metadata={"receipt": "0042"})
        assert resp.status_code == 201
        log = resp.json["log"]
        assert log["staffName"] == "Staff cashier-1"
        assert log["metadata"] == {"receipt": "0042"}
        assert log["severity"] == "warning"

        resp = client.get(f"/api/staff/logs?userId={OWNER_A}&severity=warning")
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["data"][0]["action"] == "SALE_VOIDED"

        resp = client.get(f"/api/staff/logs?userId={OWNER_A}&severity=info")
        assert resp.json["count"] == 0

    def test_staff_records_own_activity(self, client, db_session, cashier):
        resp = self._log(client, "cashier-1", cashier)
        assert resp.status_code == 201
        assert resp.json["log"]["severity"] == "info"

    def test_staff_cannot_record_for_colleague(self, client, db_session, cashier, make_staff):
        make_staff("cashier-2")
        resp = self._log(client, "cashier-2", cashier)
        assert resp.status_code == 403
        assert resp.json["error"] == "Staff can only record their own activity"

    @pytest.mark.parametrize("extra, message", [
        ({"severity": "fatal"}, "Invalid severity. Must be info, warning, error, or critical"),
        ({"metadata": ["not", "an", "object"]}, "metadata must be an object"),
        ({"description": ""}, "description is required"),
    ])
    def test_invalid_entry_is_400(self, client, db_session, cashier, extra, message):
        resp = self._log(client, OWNER_A, cashier, **extra)
        assert resp.status_code == 400
        assert resp.json["error"] == message

    def test_other_tenant_staff_is_404(self, client, db_session, cashier):
        resp = self._log(client, OWNER_B, cashier)
        assert resp.status_code == 404

    def test_listing_hides_other_branches_from_staff(self, client, db_session, cashier, main_branch, second_branch, make_staff):
        make_staff("manager-2", role="manager", branch_ids=[second_branch.id])
        self._log(client, OWNER_A, cashier, branchId=main_branch.id)
        self._log(client, OWNER_A, cashier)

        resp = client.get("/api/staff/logs?userId=manager-2")
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["data"][0]["branchId"] is None
