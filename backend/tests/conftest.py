"""
Pytest fixtures for FahamPesa backend tests.

Provides an in-memory database, two independent tenants with branches,
products and stock, and helpers for staff accounts and Pro subscriptions.
"""

from datetime import timedelta

import pytest

from fahampesa import create_app
from fahampesa.extensions import db
from fahampesa.models import Branch, Product, StaffMember, StockLevel, Subscription, Supplier
from fahampesa.time_utils import utcnow


OWNER_A = "owner-a-uid"
OWNER_B = "owner-b-uid"
SUPER_ADMIN = "super-admin-uid"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SUPER_ADMIN_UID': SUPER_ADMIN,
        'BUSINESS_TIMEZONE': 'Africa/Nairobi',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _branch(user_id, name, code, is_main=False, status="ACTIVE"):
    branch = Branch(user_id=user_id, name=name, code=code, status=status, is_main=is_main)
    db.session.add(branch)
    db.session.commit()
    return branch


def _product(user_id, name, sku, cost_price=50, selling_price=80):
    product = Product(
        user_id=user_id,
        name=name,
        sku=sku,
        unit="pcs",
        cost_price=cost_price,
        selling_price=selling_price,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def main_branch(db_session):
    """Tenant A's main branch."""
    return _branch(OWNER_A, "Nairobi CBD", "NBO", is_main=True)


@pytest.fixture(scope='function')
def second_branch(db_session, main_branch):
    """Tenant A's second branch."""
    return _branch(OWNER_A, "Westlands", "WST")


@pytest.fixture(scope='function')
def branch_b(db_session):
    """Tenant B's main branch."""
    return _branch(OWNER_B, "Mombasa", "MSA", is_main=True)


@pytest.fixture(scope='function')
def product(db_session):
    """Tenant A product."""
    return _product(OWNER_A, "Unga 2kg", "UNGA-2")


@pytest.fixture(scope='function')
def other_product(db_session):
    """Second tenant A product."""
    return _product(OWNER_A, "Sukari 1kg", "SUK-1", cost_price=120, selling_price=150)


@pytest.fixture(scope='function')
def product_b(db_session):
    """Tenant B product."""
    return _product(OWNER_B, "Maziwa 500ml", "MAZ-500")


@pytest.fixture(scope='function')
def make_stock(db_session):
    """Factory: stock level for a product at a branch."""
    def _make(product, branch, current=20, reorder_point=5, average_cost=50, reserved=0):
        level = StockLevel(
            user_id=branch.user_id,
            product_id=product.id,
            branch_id=branch.id,
            current_stock=current,
            reserved_stock=reserved,
            reorder_point=reorder_point,
            reorder_quantity=10,
            average_cost_price=average_cost,
        )
        db.session.add(level)
        db.session.commit()
        return level
    return _make


@pytest.fixture(scope='function')
def stock(make_stock, product, main_branch):
    """20 units of `product` at the main branch."""
    return make_stock(product, main_branch)


@pytest.fixture(scope='function')
def make_products(db_session):
    """Factory: `count` extra products for a tenant."""
    def _make(user_id, count):
        return [_product(user_id, f"Item {i}", f"SKU-{i}") for i in range(count)]
    return _make


@pytest.fixture(scope='function')
def make_staff(db_session):
    """Factory: staff member of tenant A."""
    def _make(auth_id, role="cashier", permissions=None, branch_ids=None, status="active", user_id=OWNER_A):
        from fahampesa.permissions import get_role_permissions

        staff = StaffMember(
            auth_id=auth_id,
            user_id=user_id,
            full_name=f"Staff {auth_id}",
            role=role,
            branch_ids=list(branch_ids or []),
            permissions=list(permissions if permissions is not None else get_role_permissions(role)),
            status=status,
            two_factor_enabled=False,
        )
        db.session.add(staff)
        db.session.commit()
        return staff
    return _make


@pytest.fixture(scope='function')
def make_pro(db_session):
    """Factory: active monthly subscription that makes a tenant Pro."""
    def _make(user_id):
        now = utcnow()
        subscription = Subscription(
            user_id=user_id,
            plan_type="monthly",
            plan_name="1 month Pro Plan",
            status="active",
            amount=2000,
            currency="KSH",
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=29),
        )
        db.session.add(subscription)
        db.session.commit()
        return subscription
    return _make


@pytest.fixture(scope='function')
def supplier(db_session):
    """Active supplier of tenant A."""
    supplier = Supplier(user_id=OWNER_A, name="Bidco Distributors", status="ACTIVE")
    db.session.add(supplier)
    db.session.commit()
    return supplier
