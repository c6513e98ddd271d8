"""
Concurrency tests.

Two kinds of failure are covered:
1. A commit that fails (database locked) must not report success for work
   the rollback threw away; the whole unit of work runs again.
2. Two writers racing on the same versioned row: the loser gets a
   StaleDataError and run_with_retry replays its work on fresh state.

The racing tests use a file-backed SQLite database so that two sessions
really hold separate connections.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from conftest import OWNER_A, SUPER_ADMIN
from fahampesa import create_app
from fahampesa.errors import StateConflictError
from fahampesa.extensions import db
from fahampesa.models import Branch, BranchTransfer, Product, StockLevel, StockMovement
from fahampesa.services import inventory_service, transfer_service
from fahampesa.services.concurrency import commit_with_retry, run_with_retry


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr("fahampesa.services.concurrency.time.sleep", lambda seconds: None)


def _locked_commit(monkeypatch, failures):
    """Make the next `failures` commits fail the way a busy SQLite file does."""
    real_commit = db.session.commit
    calls = {"count": 0}

    def commit():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        return real_commit()

    monkeypatch.setattr(db.session, "commit", commit)
    return calls


# =============================================================================
# FAILED COMMITS
# =============================================================================


class TestCommitRetry:

    def _adjust(self, client, product, branch):
        return client.post("/api/inventory/stock/adjust", json={
            "userId": OWNER_A,
            "productId": product.id,
            "branchId": branch.id,
            "quantity": -5,
            "reason": "Damaged",
        })

    def test_locked_commit_reruns_the_adjustment(
        self, client, db_session, stock, product, main_branch, monkeypatch, no_backoff
    ):
        calls = _locked_commit(monkeypatch, failures=1)

        resp = self._adjust(client, product, main_branch)

        assert resp.status_code == 200
        assert resp.json["stockLevel"]["currentStock"] == 15
        assert calls["count"] == 2

        db_session.expire_all()
        assert db_session.get(StockLevel, stock.id).current_stock == 15
        movement = StockMovement.query.one()
        assert movement.quantity == -5
        assert movement.previous_stock == 20

    def test_commit_that_never_succeeds_is_500(
        self, client, db_session, stock, product, main_branch, monkeypatch, no_backoff
    ):
        calls = _locked_commit(monkeypatch, failures=3)

        resp = self._adjust(client, product, main_branch)

        assert resp.status_code == 500
        assert resp.json["error"] == "Failed to adjust stock"
        assert calls["count"] == 3

        monkeypatch.undo()
        db_session.expire_all()
        assert db_session.get(StockLevel, stock.id).current_stock == 20
        assert StockMovement.query.count() == 0

    def test_returns_result_of_committed_attempt(self, db_session, monkeypatch, no_backoff):
        _locked_commit(monkeypatch, failures=1)
        attempts = []

        def work():
            attempts.append(len(attempts) + 1)
            return attempts[-1]

        assert commit_with_retry(work) == 2

    def test_validation_errors_are_not_retried(self, db_session, monkeypatch, no_backoff):
        calls = _locked_commit(monkeypatch, failures=0)
        attempts = []

        def work():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            commit_with_retry(work)
        assert len(attempts) == 1
        assert calls["count"] == 0


# =============================================================================
# RACING WRITERS
# =============================================================================


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.db'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SUPER_ADMIN_UID': SUPER_ADMIN,
        'BUSINESS_TIMEZONE': 'Africa/Nairobi',
        'LOG_LEVEL': 'WARNING',
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def race_stock(file_app):
    """Two branches of tenant A with 20 units at the first."""
    main = Branch(user_id=OWNER_A, name="Nairobi CBD", code="NBO", status="ACTIVE", is_main=True)
    other = Branch(user_id=OWNER_A, name="Westlands", code="WST", status="ACTIVE", is_main=False)
    product = Product(user_id=OWNER_A, name="Unga 2kg", sku="UNGA-2", unit="pcs",
                      cost_price=50, selling_price=80, is_active=True)
    db.session.add_all([main, other, product])
    db.session.flush()
    level = StockLevel(
        user_id=OWNER_A,
        product_id=product.id,
        branch_id=main.id,
        current_stock=20,
        reserved_stock=0,
        reorder_point=5,
        reorder_quantity=10,
        average_cost_price=50,
    )
    db.session.add(level)
    db.session.commit()
    return {"main": main.id, "other": other.id, "product": product.id, "level": level.id}


class TestRacingWriters:

    def test_second_writer_gets_stale_data_error(self, file_app, race_stock):
        first = Session(db.engine)
        second = Session(db.engine)
        try:
            mine = first.get(StockLevel, race_stock["level"])
            theirs = second.get(StockLevel, race_stock["level"])

            mine.current_stock = 15
            first.commit()

            theirs.current_stock = 25
            with pytest.raises(StaleDataError):
                second.flush()
            second.rollback()

            assert second.get(StockLevel, race_stock["level"]).current_stock == 15
        finally:
            first.close()
            second.close()

    def test_adjustment_replays_after_concurrent_write(self, file_app, race_stock, monkeypatch, no_backoff):
        real_lookup = inventory_service.locked_stock_level
        reads = []

        def lookup(user_id, product_id, branch_id):
            level = real_lookup(user_id, product_id, branch_id)
            if not reads:
                # Another request sells 3 units between our read and our write
                with Session(db.engine) as other:
                    other.get(StockLevel, level.id).current_stock -= 3
                    other.commit()
            reads.append(level.current_stock)
            return level

        monkeypatch.setattr(inventory_service, "locked_stock_level", lookup)

        result = commit_with_retry(lambda: inventory_service.adjust_stock(OWNER_A, {
            "productId": race_stock["product"],
            "branchId": race_stock["main"],
            "quantity": -5,
            "reason": "Damaged",
        }))

        assert reads == [20, 17]
        assert result["stockLevel"]["currentStock"] == 12
        assert result["movement"]["previousStock"] == 17

        db.session.expire_all()
        assert db.session.get(StockLevel, race_stock["level"]).current_stock == 12
        assert StockMovement.query.count() == 1

    def test_transfer_approved_twice_concurrently(self, file_app, race_stock, monkeypatch, no_backoff):
        transfer = transfer_service.create_branch_transfer(
            OWNER_A, race_stock["main"], race_stock["other"],
            [{"productId": race_stock["product"], "quantity": 4}],
        )
        db.session.commit()
        transfer_id = transfer.id

        real_locked = transfer_service._locked_transfer
        reads = []

        def locked(transfer_id, user_id):
            found = real_locked(transfer_id, user_id)
            if not reads:
                # A second approver gets there first
                with Session(db.engine) as other:
                    row = other.get(BranchTransfer, transfer_id)
                    row.status = "APPROVED"
                    other.commit()
            reads.append(found.status)
            return found

        monkeypatch.setattr(transfer_service, "_locked_transfer", locked)

        with pytest.raises(StateConflictError) as exc_info:
            transfer_service.approve_stock_transfer(transfer_id, OWNER_A, None, actor_id="manager-1")

        # The replay sees the committed approval and refuses to approve again
        assert reads == ["REQUESTED", "APPROVED"]
        assert "Cannot approve transfer in APPROVED status" in str(exc_info.value)

    def test_run_with_retry_gives_up_after_attempts(self, file_app, race_stock, no_backoff):
        attempts = []

        def always_stale():
            attempts.append(1)
            raise StaleDataError("row changed")

        with pytest.raises(StaleDataError):
            run_with_retry(always_stale, attempts=3)
        assert len(attempts) == 3
