"""
CLI tests (flask system / users / products / orders groups).
"""

from storefront.extensions import db
from storefront.models import Order, Product, Role, User
from storefront.services.permission_service import get_user_role_names

from conftest import PASSWORD, fill_cart, orphan_header, place_order


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0
    assert "Roles created: 3" in first.output
    assert "Roles created: 0" in second.output
    assert db.session.query(Role).count() == 3


def test_users_create(app, setup_roles):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--username", "desk", "--email", "desk@shop.test",
        "--password", PASSWORD, "--role", "operator",
    ])

    assert result.exit_code == 0
    user = db.session.query(User).filter_by(username="desk").one()
    assert get_user_role_names(user.id) == ["operator"]


def test_products_add(app, db_session):
    result = app.test_cli_runner().invoke(args=["products", "add", "--name", "Jute Bag", "--price-cents", "14900"])

    assert result.exit_code == 0
    assert db.session.query(Product).filter_by(name="Jute Bag").one().price_cents == 14900


def test_orders_list(app, customer, products):
    tea, _ = products
    order = place_order(customer, fill_cart(customer, (tea, 1)), payment_method="cod")
    runner = app.test_cli_runner()

    listed = runner.invoke(args=["orders", "list", "--status", "confirmed"])
    assert order.order_number in listed.output

    empty = runner.invoke(args=["orders", "list", "--status", "shipped"])
    assert "No orders found." in empty.output


def test_sweep_incomplete(app, customer):
    orphan_header(customer, number="20260101-000000-042")
    runner = app.test_cli_runner()

    dry = runner.invoke(args=["orders", "sweep-incomplete", "--dry-run"])
    assert "Would delete 1 incomplete order(s)" in dry.output
    assert db.session.query(Order).count() == 1

    real = runner.invoke(args=["orders", "sweep-incomplete"])
    assert "Deleted 1 incomplete order(s)" in real.output
    assert "20260101-000000-042" in real.output
    assert db.session.query(Order).count() == 0

    again = runner.invoke(args=["orders", "sweep-incomplete"])
    assert "No incomplete orders found." in again.output
