# Overview: Flask CLI command groups for bootstrap, user and warehouse inspection.

# backend/edusales/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and one default user per workflow role.
#
# User inspection/bootstrap:
# - python -m flask users list [--role Manager]
#   List all users with roles and active status.
# - python -m flask users create --name "Asha" --email asha@edusales.local --password "Password123" --role Employee
#   Create a user (prompts if options are omitted).
#
# Warehouse:
# - python -m flask warehouse add-item --product-name Abacus --category Kit --level L2 --stock 100
#   Register a stocked product.
# - python -m flask warehouse list [--status "Low Stock"]
#   List warehouse items with their stock status.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, USER_ROLES
from .services.auth_service import create_user, PasswordValidationError, UserError
from .services import stock_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the EduSales backend: tables and default workflow users.

    Creates:
    - All tables (no-op when they exist)
    - Users: admin, manager, warehouse, employee (@edusales.local)
    - All passwords default to: "Password123"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing EduSales backend...")

    db.create_all()
    click.echo("PASS Tables ready")

    click.echo("\nUSERS Creating default users...")

    # Meets requirements: 8+ chars, a letter and a digit
    default_password = "Password123"

    default_users = [
        ("Admin", "admin@edusales.local", "Admin"),
        ("Manager", "manager@edusales.local", "Manager"),
        ("Warehouse", "warehouse@edusales.local", "Warehouse"),
        ("Employee", "employee@edusales.local", "Employee"),
    ]

    for name, email, role in default_users:
        existing = db.session.query(User).filter_by(email=email).first()
        if existing:
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue

        try:
            create_user(name=name, email=email, password=default_password, role=role)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except (PasswordValidationError, UserError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{email}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE EduSales backend initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for _, email, _ in default_users:
        click.echo(f"   {email:<28} / {default_password}")
    click.echo("")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', default=None, type=click.Choice(USER_ROLES), help='Only show this role')
@with_appcontext
def list_users(role):
    """List all users with roles and active status."""
    q = db.session.query(User)
    if role:
        q = q.filter_by(role=role)
    users = q.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<22} {'Email':<32} {'Role':<14} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<22} {user.email:<32} {user.role:<14} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Login email (unique)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', prompt=True, type=click.Choice(USER_ROLES), default='Employee', help='Role')
@click.option('--emp-code', default=None, help='Employee code')
@click.option('--zone', default=None, help='Sales zone')
@with_appcontext
def create_user_cli(name, email, password, role, emp_code, zone):
    """Create a user."""
    try:
        user = create_user(name=name, email=email, password=password, role=role, emp_code=emp_code, zone=zone)
    except (PasswordValidationError, UserError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user {user.email} (ID: {user.id}) with role '{user.role}'")


# =============================================================================
# WAREHOUSE COMMANDS
# =============================================================================

@click.group('warehouse')
def warehouse_group():
    """Warehouse stock commands."""


@warehouse_group.command('add-item')
@click.option('--product-name', required=True, help='Product name as written on DC lines')
@click.option('--product-code', default=None, help='Unique product code')
@click.option('--category', default=None)
@click.option('--level', default=None)
@click.option('--stock', 'current_stock', default=0, type=int, help='Opening stock')
@click.option('--min-stock', default=0, type=int, help='Low-stock threshold')
@click.option('--unit-price', default=0, type=int)
@with_appcontext
def add_item(product_name, product_code, category, level, current_stock, min_stock, unit_price):
    """Register a stocked product."""
    try:
        item = stock_service.create_item({
            "product_name": product_name,
            "product_code": product_code,
            "category": category,
            "level": level,
            "current_stock": current_stock,
            "min_stock": min_stock,
            "unit_price": unit_price,
        })
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Created item {item.product_name} (ID: {item.id}) stock={item.current_stock} [{item.status}]")


@warehouse_group.command('list')
@click.option('--status', default=None, help='In Stock | Low Stock | Out of Stock | Discontinued')
@click.option('--category', default=None)
@with_appcontext
def list_items(status, category):
    """List warehouse items with their stock status."""
    items = stock_service.list_items(status=status, category=category)

    if not items:
        click.echo("No warehouse items found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Product':<26} {'Category':<14} {'Level':<6} {'Stock':>7}  {'Status'}")
    click.echo("="*80)

    for item in items:
        click.echo(
            f"{item.id:<5} {item.product_name:<26} {item.category or '-':<14} "
            f"{item.level or '-':<6} {item.current_stock:>7}  {item.status}"
        )

    click.echo("="*80 + "\n")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(warehouse_group)
