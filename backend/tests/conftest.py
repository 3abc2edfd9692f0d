"""
Pytest fixtures for storefront backend tests.

Provides the test app (in-memory SQLite, temp upload folder), a clean
database per test, accounts for two customers and an operator, a small
catalog, and helpers for carts, orders and auth headers.
"""

import io
from datetime import timedelta

import pytest
from werkzeug.datastructures import FileStorage

from storefront import create_app
from storefront.extensions import db
from storefront.models import Order, Product
from storefront.services.auth_service import create_user, create_default_roles, assign_role
from storefront.services import cart_service, order_service, permission_service
from storefront.time_utils import utcnow


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
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


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Setup default roles and permissions."""
    create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    db_session.commit()


def _make_user(username: str, role: str, **extra):
    user = create_user(username, f"{username}@shop.test", PASSWORD, **extra)
    assign_role(user.id, role)
    return user


@pytest.fixture(scope='function')
def customer(setup_roles):
    return _make_user("asha", "customer", full_name="Asha Rao", phone="9876543210")


@pytest.fixture(scope='function')
def other_customer(setup_roles):
    return _make_user("ben", "customer", full_name="Ben Ito", phone="9123456780")


@pytest.fixture(scope='function')
def operator(setup_roles):
    return _make_user("ops", "operator", full_name="Order Desk")


@pytest.fixture(scope='function')
def products(db_session):
    """Two catalog products: 249.00 and 99.00."""
    tea = Product(name="Masala Tea", price_cents=24900, image_url="https://cdn.shop.test/tea.png")
    mug = Product(name="Clay Mug", price_cents=9900)
    db_session.add_all([tea, mug])
    db_session.commit()
    return tea, mug


def fill_cart(user, *lines):
    """lines: (product, quantity) pairs."""
    for product, quantity in lines:
        cart_service.add_to_cart(user.id, product.id, quantity)
    return cart_service.get_cart_snapshot(user.id)


def place_order(user, cart, payment_method="upi", **overrides):
    fields = {
        "shipping_address": "12 MG Road, Bengaluru",
        "shipping_pincode": "560001",
        "customer_name": user.full_name or user.username,
        "customer_phone": user.phone or "9000000000",
        "customer_email": user.email,
        "payment_method": payment_method,
    }
    fields.update(overrides)
    return order_service.create_order(user_id=user.id, cart=cart, **fields)


def orphan_header(user, *, age=timedelta(hours=1), checkout_key=None, number="20260101-000000-001"):
    """Order header without items, as left behind by an interrupted checkout."""
    created = utcnow() - age
    order = Order(
        order_number=number,
        user_id=user.id,
        total_amount_cents=24900,
        status="pending_payment_verification",
        payment_method="upi",
        payment_status="pending",
        shipping_address="12 MG Road",
        customer_name="Asha Rao",
        customer_phone="9876543210",
        customer_email="asha@shop.test",
        checkout_key=checkout_key,
        created_at=created,
        updated_at=created,
    )
    db.session.add(order)
    db.session.commit()
    return order


def screenshot(content: bytes = b"\x89PNG\r\n\x1a\nfake", filename="proof.png", content_type="image/png"):
    return FileStorage(stream=io.BytesIO(content), filename=filename, content_type=content_type)


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
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.username))


@pytest.fixture(scope='function')
def other_customer_headers(client, other_customer):
    return auth_headers(get_auth_token(client, other_customer.username))


@pytest.fixture(scope='function')
def operator_headers(client, operator):
    return auth_headers(get_auth_token(client, operator.username))
