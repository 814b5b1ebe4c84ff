# Overview: Flask CLI command groups for bootstrap, users and order maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default admin and customer, demo products.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username admin2 --email admin2@gameon.local --password "Password123!" --role admin
# - python -m flask users list
#
# Orders:
# - python -m flask orders list [--status pending]
# - python -m flask orders set-status 12 shipped
#   Same rules as the admin API (audit entries, automatic refund on cancelling a paid prepaid order).
# - python -m flask orders seed-demo [--username customer] [--count 10]
#   Create demo orders in a spread of statuses and payment methods.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Order, OrderStatus, PaymentMethod, Product, User, UserRole
from .services.auth_service import create_user, PasswordValidationError
from .services import order_service
from .validation import DOMAIN_ERRORS


DEFAULT_PASSWORD = "Password123!"

DEMO_PRODUCTS = [
    ("Kashmir Willow Cricket Bat", "cricket", 249900),
    ("Leather Cricket Ball", "cricket", 59900),
    ("Size 5 Training Football", "football", 129900),
    ("Carbon Badminton Racket", "badminton", 189900),
    ("Feather Shuttlecocks (12)", "badminton", 79900),
    ("Indoor Basketball", "basketball", 149900),
    ("Table Tennis Paddle Set", "table-tennis", 99900),
    ("Shin Guards", "football", 49900),
]

# (status, payment method, payment details) cycled by seed-demo
DEMO_ORDER_PLAN = [
    (OrderStatus.DELIVERED, PaymentMethod.COD, {}),
    (OrderStatus.DELIVERED, PaymentMethod.UPI, {"upi_id": "demo@okbank"}),
    (OrderStatus.SHIPPED, PaymentMethod.CARD, {"card_last4": "4242"}),
    (OrderStatus.SHIPPED, PaymentMethod.COD, {}),
    (OrderStatus.PROCESSING, PaymentMethod.NETBANKING, {"bank_name": "State Bank"}),
    (OrderStatus.PROCESSING, PaymentMethod.COD, {}),
    (OrderStatus.PENDING, PaymentMethod.UPI, {"upi_id": "demo@okbank"}),
    (OrderStatus.PENDING, PaymentMethod.COD, {}),
    (OrderStatus.CANCELLED, PaymentMethod.CARD, {"card_last4": "1111"}),
    (OrderStatus.CANCELLED, PaymentMethod.COD, {}),
]


def _format_amount(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the storefront: tables, default users and demo products.

    Creates (if missing):
    - Users: admin/admin@gameon.local (admin), customer/customer@gameon.local (customer)
    - All passwords default to: "Password123!"
    - Demo catalog products

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing storefront...")
    db.create_all()

    for username, role in (("admin", UserRole.ADMIN), ("customer", UserRole.CUSTOMER)):
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"PASS Using existing user: {username} (ID: {existing.id})")
            continue
        user = create_user(username, f"{username}@gameon.local", DEFAULT_PASSWORD, role=role)
        click.echo(f"PASS Created user: {username} (ID: {user.id}, role: {role.value})")

    if db.session.query(Product).count() == 0:
        for name, sport, price_cents in DEMO_PRODUCTS:
            db.session.add(Product(name=name, sport=sport, price_cents=price_cents))
        db.session.commit()
        click.echo(f"PASS Created {len(DEMO_PRODUCTS)} demo products")
    else:
        click.echo("PASS Products already present")

    click.echo("DONE Storefront initialized.")


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
@click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.CUSTOMER.value,
              show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """Create a user account."""
    try:
        user = create_user(username, email, password, role=role)
        click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {role})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except DOMAIN_ERRORS as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        raise SystemExit(1)


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {UserRole(user.role).value}")

    click.echo("="*80 + "\n")


@click.group('orders')
def orders_group():
    """Order inspection and maintenance commands."""


@orders_group.command('list')
@click.option('--status', type=click.Choice(order_service.VALID_STATUSES), help='Filter by status')
@with_appcontext
def list_orders_cli(status):
    """List orders with payment and refund state."""
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == OrderStatus(status))
    orders = query.order_by(Order.id).all()

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Buyer':<7} {'Total':>12} {'Status':<12} {'Method':<11} {'Payment':<10} {'Refund':<13} {'Txn'}")
    click.echo("="*100)

    for order in orders:
        payment = order.payment
        refund = payment.refund.status.value if payment.refund else "-"
        click.echo(
            f"{order.id:<6} {order.buyer_id:<7} {_format_amount(order.total_cents):>12} "
            f"{OrderStatus(order.status).value:<12} {payment.method.value:<11} {payment.status.value:<10} "
            f"{refund:<13} {payment.transaction_id or '-'}"
        )

    click.echo("="*100 + "\n")


@orders_group.command('set-status')
@click.argument('order_id', type=int)
@click.argument('status', type=click.Choice(order_service.VALID_STATUSES))
@with_appcontext
def set_status_cli(order_id, status):
    """Set an order's status (refunds paid prepaid orders on cancel)."""
    try:
        order = order_service.update_order_status(order_id, status)
    except DOMAIN_ERRORS as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    payment = order.payment
    click.echo(f"PASS Order {order.id} is now {OrderStatus(order.status).value} (payment: {payment.status.value})")


@orders_group.command('seed-demo')
@click.option('--username', default='customer', show_default=True, help='Buyer username')
@click.option('--count', type=int, default=len(DEMO_ORDER_PLAN), show_default=True, help='Number of orders')
@with_appcontext
def seed_demo_orders(username, count):
    """Create demo orders across statuses and payment methods."""
    buyer = db.session.query(User).filter_by(username=username).first()
    products = db.session.query(Product).order_by(Product.id).limit(10).all()

    if not buyer or not products:
        click.echo("FAIL Run 'python -m flask system init' first to create users and products")
        raise SystemExit(1)

    for i in range(count):
        status, method, details = DEMO_ORDER_PLAN[i % len(DEMO_ORDER_PLAN)]
        first = products[i % len(products)]
        second = products[(i + 1) % len(products)]
        lines = [
            {"product_id": first.id, "quantity": 1 + i % 3, "unit_price_cents": first.price_cents},
            {"product_id": second.id, "quantity": 1, "unit_price_cents": second.price_cents},
        ]
        total = sum(line["quantity"] * line["unit_price_cents"] for line in lines)

        order = order_service.create_order(
            buyer_id=buyer.id,
            line_items=lines,
            total_cents=total,
            shipping_address={"recipient_name": buyer.username, "city": "Bengaluru", "state": "Karnataka"},
            payment_method=method,
            payment_details=details,
            payment_confirmed=True,
        )
        if status is not OrderStatus.PENDING:
            order = order_service.update_order_status(order.id, status)

        click.echo(f"PASS Order {order.id}: {status.value} / {method.value} ({_format_amount(total)})")

    click.echo(f"DONE Created {count} demo orders for {buyer.username}.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(orders_group)
