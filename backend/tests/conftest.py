"""
Pytest fixtures for storefront backend tests.

Provides test database setup, users, catalog products and test client.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, UserRole
from storefront.services.auth_service import create_user
from storefront.services import order_service


PASSWORD = "Password123!"

UPI_DETAILS = {"upi_id": "buyer@okbank"}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'ORDER_WRITE_RETRY_ATTEMPTS': 3,
        'ORDER_WRITE_RETRY_BACKOFF': 0,
        'LOG_LEVEL': 'DEBUG',
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


def _make_user(username, role):
    return create_user(username, f"{username}@gameon.test", PASSWORD, role=role, bcrypt_rounds=4)


@pytest.fixture(scope='function')
def admin(db_session):
    """Privileged user."""
    return _make_user("admin", UserRole.ADMIN)


@pytest.fixture(scope='function')
def customer(db_session):
    """Standard user placing orders."""
    return _make_user("asha", UserRole.CUSTOMER)


@pytest.fixture(scope='function')
def other_customer(db_session):
    """Second standard user, for visibility checks."""
    return _make_user("ravi", UserRole.CUSTOMER)


@pytest.fixture(scope='function')
def bat(db_session):
    product = Product(name="Kashmir Willow Cricket Bat", sport="cricket", price_cents=249900)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def ball(db_session):
    product = Product(name="Leather Cricket Ball", sport="cricket", price_cents=59900)
    db_session.add(product)
    db_session.commit()
    return product


def line_items_for(*products, quantity=1):
    """Line items at catalog price."""
    return [
        {"product_id": p.id, "quantity": quantity, "unit_price_cents": p.price_cents}
        for p in products
    ]


def place_order(buyer, *products, method="cod", details=None, confirmed=False, **kwargs):
    """Helper to place an order through the service layer."""
    lines = line_items_for(*products)
    return order_service.create_order(
        buyer_id=buyer.id,
        line_items=lines,
        total_cents=sum(line["unit_price_cents"] * line["quantity"] for line in lines),
        payment_method=method,
        payment_details=details,
        payment_confirmed=confirmed,
        **kwargs,
    )


@pytest.fixture(scope='function')
def cod_order(customer, bat):
    return place_order(customer, bat)


@pytest.fixture(scope='function')
def upi_order(customer, bat, ball):
    return place_order(customer, bat, ball, method="upi", details=UPI_DETAILS, confirmed=True)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.username))


@pytest.fixture(scope='function')
def other_customer_headers(client, other_customer):
    return auth_headers(get_auth_token(client, other_customer.username))
