"""
Pytest fixtures for shopledger tests.

Provides the in-memory database, per-test table cleanup and a few catalog
fixtures shared by the service tests.
"""

from decimal import Decimal

import pytest
from shopledger import create_app
from shopledger.config import TestConfig
from shopledger.extensions import db
from shopledger.models.inventory import TRANSACTION_PURCHASE
from shopledger.services import inventory_service, products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def product(db_session):
    """Plain product: base unit 个, purchase 10, retail 15, no stock."""
    return products_service.create_product(
        name="Screw M4",
        base_unit="个",
        purchase_price=10,
        retail_price=15,
        specification="M4x20",
        supplier="Hardware Co",
    )


@pytest.fixture(scope='function')
def boxed_product(product):
    """Product with a 箱 package unit (1 箱 = 10 个)."""
    products_service.add_package_unit(product.id, name="箱", conversion_rate=10)
    return product


@pytest.fixture(scope='function')
def stocked_product(boxed_product):
    """Boxed product with 50 个 on hand."""
    inventory_service.adjust_inventory(
        boxed_product.id, Decimal("50"), TRANSACTION_PURCHASE, note="Opening stock"
    )
    return boxed_product
