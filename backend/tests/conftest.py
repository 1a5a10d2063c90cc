"""
Pytest fixtures for pharmapos backend tests.

Provides test database setup, operator identities, a demo catalog and test client.
"""

import pytest

from pharmapos import create_app
from pharmapos.extensions import db
from pharmapos.identity import OperatorContext, ROLE_CASHIER, ROLE_MANAGER, ROLE_PHARMACIST
from pharmapos.services import catalog_service
from pharmapos.services.cart_service import CART_STORE_KEY, InMemoryCartStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
        'CREDIT_PAYMENT_METHODS': ['credit'],
        'CHECKOUT_ACCEPT_PARTIAL': False,
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
    """Fresh database and empty carts for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions[CART_STORE_KEY] = InMemoryCartStore()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def cashier():
    return OperatorContext(operator_id="cashier-1", name="Cathy Cashier", role=ROLE_CASHIER)


@pytest.fixture(scope='function')
def other_cashier():
    return OperatorContext(operator_id="cashier-2", name="Otto Cashier", role=ROLE_CASHIER)


@pytest.fixture(scope='function')
def pharmacist():
    return OperatorContext(operator_id="pharm-1", name="Phil Pharmacist", role=ROLE_PHARMACIST)


@pytest.fixture(scope='function')
def manager():
    return OperatorContext(operator_id="mgr-1", name="Mona Manager", role=ROLE_MANAGER)


def make_item(name, *, units, source_unit_type, source_price_cents, opening_quantity=0, **kwargs):
    return catalog_service.create_item(
        name=name,
        units=units,
        source_unit_type=source_unit_type,
        source_price_cents=source_price_cents,
        opening_quantity=opening_quantity,
        **kwargs,
    )


@pytest.fixture(scope='function')
def panadol(db_session):
    """Panadol: SINGLE 10c, STRIP(10) 100c, BOX(100) 1000c; 20 singles on hand."""
    return make_item(
        "Panadol 500mg",
        generic_name="Paracetamol",
        category="Analgesics",
        cost_price_cents=6,
        reorder_level=5,
        units=[
            {"type": "SINGLE", "base_quantity": 1},
            {"type": "STRIP", "base_quantity": 10},
            {"type": "BOX", "base_quantity": 100},
        ],
        source_unit_type="BOX",
        source_price_cents=1000,
        opening_quantity=20,
    )


@pytest.fixture(scope='function')
def syrup(db_session):
    """Cough syrup: BOTTLE 300c; 10 bottles on hand."""
    return make_item(
        "Cough Syrup 100ml",
        category="Cold & Flu",
        cost_price_cents=150,
        reorder_level=2,
        units=[{"type": "BOTTLE", "base_quantity": 1}],
        source_unit_type="BOTTLE",
        source_price_cents=300,
        opening_quantity=10,
    )


@pytest.fixture(scope='function')
def gloves(db_session):
    """Gloves: PAIR 40c, BOX(50) 2000c; only 5 pairs on hand."""
    return make_item(
        "Surgical Gloves",
        category="Consumables",
        cost_price_cents=20,
        reorder_level=10,
        units=[
            {"type": "PAIR", "base_quantity": 1},
            {"type": "BOX", "base_quantity": 50},
        ],
        source_unit_type="PAIR",
        source_price_cents=40,
        opening_quantity=5,
    )


def operator_headers(operator):
    return {
        "X-Operator-Id": operator.operator_id,
        "X-Operator-Name": operator.name or "",
        "X-Operator-Role": operator.role,
    }


@pytest.fixture(scope='function')
def headers_for():
    """Request headers the fronting session layer sends for an operator."""
    return operator_headers
