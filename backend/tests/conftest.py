"""
Pytest fixtures for thriftpos backend tests.

Provides test database setup, seed rows (cashier, terminal, products,
customer with store credit) and a test client.
"""

from decimal import Decimal

import pytest
from thriftpos import create_app
from thriftpos.config import TestConfig
from thriftpos.extensions import db
from thriftpos.models import User, Terminal, Customer, Product, StoreCreditAccount
from thriftpos.services.payment_processor import MockPaymentProcessor, register_processor


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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


@pytest.fixture(scope='function', autouse=True)
def mock_processor(app):
    """Fresh, always-approving mock processor for every test."""
    processor = MockPaymentProcessor()
    with app.app_context():
        register_processor(processor, "mock")
    return processor


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(username="cashier1", display_name="Front Cashier", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    user = User(username="manager1", display_name="Floor Manager", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def terminal(db_session):
    terminal = Terminal(terminal_number=1, terminal_name="Front Counter", location="Main Floor", is_active=True)
    db_session.add(terminal)
    db_session.commit()
    return terminal


@pytest.fixture(scope='function')
def lamp(db_session):
    """$10.99 lamp at 8% tax, 5 in stock."""
    product = Product(
        sku="LAMP-001",
        name="Brass Table Lamp",
        description="Vintage brass lamp",
        base_price=Decimal("10.99"),
        tax_rate=Decimal("8.00"),
        quantity_in_stock=5,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def coat(db_session):
    """$50.00 untaxed coat, 8 in stock."""
    product = Product(
        sku="COAT-001",
        name="Wool Coat",
        base_price=Decimal("50.00"),
        tax_rate=Decimal("0.00"),
        quantity_in_stock=8,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(first_name="Dana", last_name="Reyes", email="dana@example.com", is_active=True)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def store_credit(db_session, customer):
    """$40.00 store credit for the customer."""
    account = StoreCreditAccount(customer_id=customer.id, balance=Decimal("40.00"), is_active=True)
    db_session.add(account)
    db_session.commit()
    return account


def user_headers(user) -> dict:
    """Helper to attribute a test-client request to a user."""
    return {'X-User-Id': str(user.id)}
