# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates roles, permissions and role assignments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username ops --email ops@example.com --password "Password123!" --role operator
#   Create a user (prompts if options are omitted).
#
# Catalog (development data):
# - python -m flask products add --name "Tea" --price-cents 24900
#
# Orders:
# - python -m flask orders list --status pending_payment_verification --limit 20
#   List recent orders.
# - python -m flask orders sweep-incomplete --older-than-minutes 15 --dry-run
#   Find (or delete) order headers left without items by interrupted checkouts.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Order, Product
from .permissions import DEFAULT_ROLES
from .services.auth_service import create_user, create_default_roles, assign_role, PasswordValidationError
from .services import order_service
from .services import permission_service
from .services.order_lifecycle import VALID_STATUSES


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize roles and permissions.

    Safe to run multiple times.
    """
    click.echo("START Initializing storefront...")

    created_roles = create_default_roles()
    click.echo(f"PASS Roles created: {created_roles} (of {len(DEFAULT_ROLES)})")

    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    click.echo("DONE Create accounts with: python -m flask users create")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([name for name, _ in DEFAULT_ROLES]), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@click.option('--phone', default=None, help='Phone number')
@with_appcontext
def create_user_cli(username, email, password, role, full_name, phone):
    """Create a user with a role."""
    try:
        user = create_user(username, email, password, full_name=full_name, phone=phone)
        assign_role(user.id, role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")


@click.group('products')
def products_group():
    """Catalog helpers for development data."""


@products_group.command('add')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--image-url', default=None, help='Image URL')
@with_appcontext
def add_product_cli(name, price_cents, image_url):
    if price_cents < 0:
        click.echo("FAIL price must not be negative")
        return
    product = Product(name=name, price_cents=price_cents, image_url=image_url, is_active=True)
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, {product.price_cents} cents)")


@click.group('orders')
def orders_group():
    """Order inspection and reconciliation commands."""


@orders_group.command('list')
@click.option('--status', type=click.Choice(sorted(VALID_STATUSES)), default=None, help='Filter by status')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_orders_cli(status, limit):
    q = db.session.query(Order)
    if status:
        q = q.filter(Order.status == status)
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*96)
    click.echo(f"{'ID':<6} {'Number':<22} {'Status':<30} {'Method':<7} {'Payment':<9} {'Items':<6} {'Total'}")
    click.echo("="*96)
    for order in orders:
        click.echo(
            f"{order.id:<6} {order.order_number:<22} {order.status:<30} {order.payment_method:<7} "
            f"{order.payment_status:<9} {len(order.items):<6} {order.total_amount_cents}"
        )
    click.echo("="*96 + "\n")


@orders_group.command('sweep-incomplete')
@click.option('--older-than-minutes', type=int, default=None,
              help='Grace period (defaults to INCOMPLETE_ORDER_GRACE_MINUTES)')
@click.option('--dry-run', is_flag=True, help='Only list what would be deleted')
@with_appcontext
def sweep_incomplete_cli(older_than_minutes, dry_run):
    """Delete order headers that never received their items."""
    numbers = order_service.sweep_incomplete_orders(
        older_than_minutes=older_than_minutes,
        dry_run=dry_run,
    )
    if not numbers:
        click.echo("PASS No incomplete orders found.")
        return

    verb = "Would delete" if dry_run else "Deleted"
    click.echo(f"{verb} {len(numbers)} incomplete order(s):")
    for number in numbers:
        click.echo(f"  - {number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(orders_group)
