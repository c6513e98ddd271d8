"""
Supplier and purchase order tests.

DRAFT -> PENDING -> APPROVED/REJECTED -> SENT -> RECEIVED. The requester can
never approve their own order, and received good units post into branch
stock through the ledger.
"""

from datetime import timedelta

import pytest

from conftest import OWNER_A, OWNER_B
from fahampesa.errors import NotFoundError, StateConflictError, ValidationError
from fahampesa.models import StockLevel, StockMovement, Supplier
from fahampesa.services import purchase_order_service as po_service
from fahampesa.services.plan_limits import PlanLimitError
from fahampesa.time_utils import to_utc_z, utcnow


BUYER = "buyer-uid"


def _draft(supplier, branch, product, quantity=10, unit_cost=40):
    return po_service.create_purchase_order(
        OWNER_A,
        supplier.id,
        branch.id,
        [{"productId": product.id, "quantityOrdered": quantity, "unitCost": unit_cost}],
        actor_id=BUYER,
    )


def _sent(supplier, branch, product, **kwargs):
    po = _draft(supplier, branch, product, **kwargs)
    po_service.submit_purchase_order(po.id, OWNER_A)
    po_service.approve_purchase_order(po.id, OWNER_A, {"approved": True}, actor_id=OWNER_A)
    po_service.send_purchase_order(po.id, OWNER_A)
    return po


class TestSuppliers:

    def test_free_plan_supplier_limit(self, db_session):
        for i in range(5):
            po_service.create_supplier(OWNER_A, {"name": f"Supplier {i}"})
        with pytest.raises(PlanLimitError):
            po_service.create_supplier(OWNER_A, {"name": "One too many"})

    def test_archived_suppliers_hidden_and_free_a_slot(self, db_session, supplier):
        po_service.archive_supplier(supplier.id, OWNER_A)
        assert po_service.list_suppliers(OWNER_A) == []
        assert po_service.list_suppliers(OWNER_A, include_archived=True) == [supplier]

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            po_service.create_supplier(OWNER_A, {"name": ""})


class TestCreate:

    def test_draft_with_totals(self, db_session, supplier, main_branch, product, other_product):
        po = po_service.create_purchase_order(OWNER_A, supplier.id, main_branch.id, [
            {"productId": product.id, "quantityOrdered": 10, "unitCost": 40},
            {"productId": other_product.id, "quantityOrdered": 2, "unitCost": 115.5},
        ], actor_id=BUYER)

        assert po.status == "DRAFT"
        assert po.po_number == f"PO-{utcnow().year}-001"
        assert po.subtotal == 631.0
        assert po.total_amount == 631.0
        assert po.requested_by == BUYER

    def test_archived_supplier_rejected(self, db_session, supplier, main_branch, product):
        supplier.status = "ARCHIVED"
        db_session.commit()
        with pytest.raises(ValidationError):
            _draft(supplier, main_branch, product)

    def test_other_tenant_supplier(self, db_session, main_branch, product):
        foreign = Supplier(user_id=OWNER_B, name="Foreign", status="ACTIVE")
        db_session.add(foreign)
        db_session.commit()
        with pytest.raises(NotFoundError):
            _draft(foreign, main_branch, product)


class TestApproval:

    @pytest.fixture
    def pending(self, db_session, supplier, main_branch, product):
        po = _draft(supplier, main_branch, product)
        return po_service.submit_purchase_order(po.id, OWNER_A)

    def test_requester_cannot_approve(self, pending):
        with pytest.raises(StateConflictError) as exc_info:
            po_service.approve_purchase_order(pending.id, OWNER_A, {"approved": True}, actor_id=BUYER)
        assert str(exc_info.value) == "You cannot approve your own purchase order"
        assert pending.status == "PENDING"

    def test_other_user_approves(self, pending):
        po_service.approve_purchase_order(
            pending.id, OWNER_A, {"approved": True, "notes": "Within budget"}, actor_id=OWNER_A
        )
        assert pending.status == "APPROVED"
        assert pending.approved_by == OWNER_A
        assert pending.approval_notes == "Within budget"

    def test_reject_needs_reason(self, pending):
        with pytest.raises(ValidationError) as exc_info:
            po_service.approve_purchase_order(pending.id, OWNER_A, {"approved": False}, actor_id=OWNER_A)
        assert str(exc_info.value) == "Rejection reason is required when rejecting a purchase order"

        po_service.approve_purchase_order(
            pending.id, OWNER_A, {"approved": False, "rejectionReason": "Too expensive"}, actor_id=OWNER_A
        )
        assert pending.status == "REJECTED"

    @pytest.mark.parametrize("payload,message", [
        ({}, "approved is required"),
        ({"approved": "yes"}, "approved must be a boolean"),
    ])
    def test_approved_flag_validated(self, pending, payload, message):
        with pytest.raises(ValidationError) as exc_info:
            po_service.approve_purchase_order(pending.id, OWNER_A, payload, actor_id=OWNER_A)
        assert str(exc_info.value) == message

    def test_draft_cannot_be_approved(self, db_session, supplier, main_branch, product):
        po = _draft(supplier, main_branch, product)
        with pytest.raises(StateConflictError):
            po_service.approve_purchase_order(po.id, OWNER_A, {"approved": True}, actor_id=OWNER_A)

    def test_send_requires_approval(self, pending):
        with pytest.raises(StateConflictError) as exc_info:
            po_service.send_purchase_order(pending.id, OWNER_A)
        assert str(exc_info.value) == "Only approved purchase orders can be sent to suppliers"


class TestReceive:

    def test_partial_then_full_receipt(self, db_session, supplier, main_branch, product, stock):
        po = _sent(supplier, main_branch, product, quantity=10, unit_cost=40)

        po_service.receive_purchase_order(po.id, OWNER_A, [
            {"productId": product.id, "quantityReceived": 6, "defectiveQuantity": 1},
        ])
        assert po.status == "SENT"
        assert po.items[0].quantity_received == 6
        assert po.items[0].outstanding_quantity == 4
        assert stock.current_stock == 25
        assert stock.average_cost_price == 48.0

        po_service.receive_purchase_order(po.id, OWNER_A, [
            {"productId": product.id, "quantityReceived": 4},
        ])
        assert po.status == "RECEIVED"
        assert po.received_at is not None
        assert stock.current_stock == 29

        receipts = StockMovement.query.filter_by(movement_type="PURCHASE_RECEIPT").all()
        assert sorted(m.quantity for m in receipts) == [4, 5]

    def test_receipt_creates_stock_level(self, db_session, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product, quantity=3, unit_cost=40)
        po_service.receive_purchase_order(po.id, OWNER_A, [{"productId": product.id, "quantityReceived": 3}])

        level = StockLevel.query.filter_by(product_id=product.id, branch_id=main_branch.id).one()
        assert level.current_stock == 3
        assert level.average_cost_price == 40.0

    def test_over_delivery_rejected(self, db_session, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product, quantity=3)
        with pytest.raises(ValidationError):
            po_service.receive_purchase_order(po.id, OWNER_A, [{"productId": product.id, "quantityReceived": 4}])

    def test_defective_cannot_exceed_received(self, db_session, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product, quantity=3)
        with pytest.raises(ValidationError):
            po_service.receive_purchase_order(po.id, OWNER_A, [
                {"productId": product.id, "quantityReceived": 1, "defectiveQuantity": 2},
            ])

    def test_only_sent_orders_received(self, db_session, supplier, main_branch, product):
        po = _draft(supplier, main_branch, product)
        with pytest.raises(StateConflictError):
            po_service.receive_purchase_order(po.id, OWNER_A, [{"productId": product.id, "quantityReceived": 1}])


def _ordered(supplier, branch, product, *, expected=None, quantity=5, unit_cost=40):
    return po_service.create_purchase_order(
        OWNER_A,
        supplier.id,
        branch.id,
        [{"productId": product.id, "quantityOrdered": quantity, "unitCost": unit_cost}],
        actor_id=BUYER,
        expected_delivery_date=to_utc_z(expected) if expected else None,
    )


def _send(po, sent_at=None):
    po_service.submit_purchase_order(po.id, OWNER_A)
    po_service.approve_purchase_order(po.id, OWNER_A, {"approved": True}, actor_id=OWNER_A)
    po_service.send_purchase_order(po.id, OWNER_A, {"sentAt": to_utc_z(sent_at)} if sent_at else None)
    return po


class TestSupplierPerformance:

    def test_new_order_counts_against_supplier(self, db_session, supplier, main_branch, product):
        po = _draft(supplier, main_branch, product)
        assert supplier.total_orders == 1
        assert supplier.last_order_date == po.created_at

    def test_late_delivery_lowers_rate(self, db_session, supplier):
        supplier.completed_orders = 3
        supplier.on_time_delivery_rate = 100
        supplier.average_delivery_days = 2

        po_service.update_supplier_performance(supplier.id, OWNER_A, {"onTimeDelivery": False, "deliveryDays": 6})

        assert supplier.on_time_delivery_rate == 75
        assert supplier.average_delivery_days == 3
        # manual entries do not add to the delivery history
        assert supplier.completed_orders == 3

    def test_delivery_needs_both_fields(self, db_session, supplier):
        po_service.update_supplier_performance(supplier.id, OWNER_A, {"onTimeDelivery": False})
        assert supplier.on_time_delivery_rate == 100

    def test_ratings_and_quality_score(self, db_session, supplier):
        po_service.update_supplier_performance(supplier.id, OWNER_A, {"qualityRating": 3, "serviceRating": 4})
        report = po_service.get_supplier_performance_report(supplier.id, OWNER_A)

        assert report["qualityRating"] == 3
        assert report["serviceRating"] == 4
        assert report["pricingRating"] is None
        # unrated dimensions count as 5
        assert report["qualityScore"] == 4
        assert report["orderFulfillmentRate"] == 100

    @pytest.mark.parametrize("payload, message", [
        ({"qualityRating": 6}, "qualityRating must be between 1 and 5"),
        ({"serviceRating": 2.5}, "serviceRating must be between 1 and 5"),
        ({"pricingRating": True}, "pricingRating must be between 1 and 5"),
        ({"onTimeDelivery": "yes", "deliveryDays": 1}, "onTimeDelivery must be a boolean"),
        ({"onTimeDelivery": True, "deliveryDays": -1}, "deliveryDays must be a non-negative number"),
    ])
    def test_invalid_payload(self, db_session, supplier, payload, message):
        with pytest.raises(ValidationError) as exc_info:
            po_service.update_supplier_performance(supplier.id, OWNER_A, payload)
        assert str(exc_info.value) == message

    def test_other_tenant_supplier_is_missing(self, db_session, supplier):
        with pytest.raises(NotFoundError):
            po_service.update_supplier_performance(supplier.id, OWNER_B, {"qualityRating": 4})

    def test_full_receipt_records_delivery(self, db_session, supplier, main_branch, product):
        now = utcnow()
        po = _send(
            _ordered(supplier, main_branch, product, expected=now + timedelta(days=2)),
            sent_at=now - timedelta(days=3) + timedelta(hours=1),
        )
        po_service.receive_purchase_order(po.id, OWNER_A, [{"productId": product.id, "quantityReceived": 5}])

        assert supplier.completed_orders == 1
        assert supplier.average_delivery_days == 3
        assert supplier.on_time_delivery_rate == 100

    def test_receipt_after_expected_date_is_late(self, db_session, supplier, main_branch, product):
        now = utcnow()
        po = _send(_ordered(supplier, main_branch, product, expected=now - timedelta(days=1)))
        po_service.receive_purchase_order(po.id, OWNER_A, [{"productId": product.id, "quantityReceived": 5}])

        assert supplier.completed_orders == 1
        assert supplier.on_time_delivery_rate == 0

    def test_partial_receipt_is_not_a_delivery(self, db_session, supplier, main_branch, product):
        po = _send(_ordered(supplier, main_branch, product))
        po_service.receive_purchase_order(po.id, OWNER_A, [{"productId": product.id, "quantityReceived": 2}])
        assert supplier.completed_orders == 0

    def test_report_counts_orders_and_committed_spend(self, db_session, supplier, main_branch, product):
        received = _send(_ordered(supplier, main_branch, product, quantity=5, unit_cost=40))
        po_service.receive_purchase_order(received.id, OWNER_A, [{"productId": product.id, "quantityReceived": 5}])
        rejected = _ordered(supplier, main_branch, product, quantity=2, unit_cost=100)
        po_service.submit_purchase_order(rejected.id, OWNER_A)
        po_service.approve_purchase_order(
            rejected.id, OWNER_A, {"approved": False, "rejectionReason": "Too dear"}, actor_id=OWNER_A
        )
        _ordered(supplier, main_branch, product, quantity=1, unit_cost=999)

        report = po_service.get_supplier_performance_report(supplier.id, OWNER_A)

        assert report["totalOrders"] == 3
        assert report["completedOrders"] == 1
        assert report["rejectedOrders"] == 1
        assert report["orderFulfillmentRate"] == 33
        assert report["totalSpend"] == 200.0
        assert report["lastOrderDate"] is not None


class TestUpdateAction:

    def test_submit_through_update(self, db_session, supplier, main_branch, product):
        po = _draft(supplier, main_branch, product)
        po_service.update_purchase_order(po.id, OWNER_A, {"action": "submit"})
        assert po.status == "PENDING"

    @pytest.mark.parametrize("action", ["approve", "cancel", None])
    def test_other_actions_rejected(self, db_session, supplier, main_branch, product, action):
        po = _draft(supplier, main_branch, product)
        with pytest.raises(ValidationError) as exc_info:
            po_service.update_purchase_order(po.id, OWNER_A, {"action": action})
        assert str(exc_info.value) == "Invalid action"
        assert po.status == "DRAFT"


class TestDashboards:

    def test_pending_and_overdue(self, db_session, supplier, main_branch, product):
        now = utcnow()
        pending = _ordered(supplier, main_branch, product)
        po_service.submit_purchase_order(pending.id, OWNER_A)
        late = _send(_ordered(supplier, main_branch, product, expected=now - timedelta(days=2)))
        _send(_ordered(supplier, main_branch, product, expected=now + timedelta(days=2)))
        _send(_ordered(supplier, main_branch, product))

        assert po_service.get_pending_approvals(OWNER_A) == [pending]
        assert po_service.get_overdue_purchase_orders(OWNER_A, now) == [late]

    def test_purchase_order_dashboard(self, db_session, supplier, main_branch, product):
        now = utcnow()
        draft = _ordered(supplier, main_branch, product, quantity=1, unit_cost=500)
        pending = _ordered(supplier, main_branch, product)
        po_service.submit_purchase_order(pending.id, OWNER_A)
        sent = _send(_ordered(supplier, main_branch, product, quantity=5, unit_cost=40,
                              expected=now - timedelta(days=1)))

        dashboard = po_service.get_purchase_order_dashboard(OWNER_A, now=now)

        assert dashboard["totalOrders"] == 3
        assert dashboard["pendingOrders"] == 1
        assert dashboard["overdueOrders"] == 1
        # drafts and pending orders are not spend yet
        assert dashboard["monthlySpend"] == 200.0
        assert {a["poNumber"] for a in dashboard["recentActivity"]} == {
            draft.po_number, pending.po_number, sent.po_number,
        }
        assert "pendingApprovalsList" not in dashboard

        detailed = po_service.get_purchase_order_dashboard(OWNER_A, include_details=True, now=now)
        assert [po["id"] for po in detailed["pendingApprovalsList"]] == [pending.id]
        assert [po["id"] for po in detailed["overdueOrdersList"]] == [sent.id]

    def test_dashboard_limited_to_branches(self, db_session, supplier, main_branch, second_branch, product):
        _ordered(supplier, main_branch, product)
        other = _ordered(supplier, second_branch, product)
        po_service.submit_purchase_order(other.id, OWNER_A)

        dashboard = po_service.get_purchase_order_dashboard(OWNER_A, branch_ids=(main_branch.id,))
        assert dashboard["totalOrders"] == 1
        assert dashboard["pendingOrders"] == 0

    def test_supplier_dashboard(self, db_session, supplier, main_branch, product):
        quiet = po_service.create_supplier(OWNER_A, {"name": "Kapa Oil"})
        busy = po_service.create_supplier(OWNER_A, {"name": "Pwani Oil"})
        po_service.archive_supplier(quiet.id, OWNER_A)
        _ordered(supplier, main_branch, product)
        _ordered(busy, main_branch, product)
        _ordered(busy, main_branch, product)

        dashboard = po_service.get_supplier_dashboard(OWNER_A)

        assert dashboard["totalSuppliers"] == 3
        assert dashboard["activeSuppliers"] == 2
        assert [s["id"] for s in dashboard["topSuppliers"]] == [busy.id, supplier.id]
        assert len(dashboard["recentOrders"]) == 3
        assert dashboard["pendingApprovals"] == 0
        assert dashboard["overdueDeliveries"] == 0

    def test_dashboards_scoped_to_tenant(self, db_session, supplier, main_branch, product):
        _ordered(supplier, main_branch, product)
        assert po_service.get_purchase_order_dashboard(OWNER_B)["totalOrders"] == 0
        assert po_service.get_supplier_dashboard(OWNER_B)["totalSuppliers"] == 0
