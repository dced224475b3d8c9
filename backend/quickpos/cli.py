# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch "Main"] [--with-demo-menu/--no-demo-menu]
#   Idempotent bootstrap: default branch, manager and cashier accounts, demo catalog.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role, branch and active status.
# - python -m flask users create --email cashier2@quickpos.local --role cashier --branch-id 1
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Category, Product, User
from .models.auth import ROLE_MANAGER, ROLE_CASHIER, VALID_ROLES
from .services.auth_service import create_user, PasswordValidationError


DEFAULT_PASSWORD = "Password123"

# (category, sort_order, [(product, price_cents)])
DEMO_MENU = [
    ("Burgers", 1, [("Classic Burger", 4500), ("Cheese Burger", 5000), ("Chicken Burger", 4800)]),
    ("Pizzas", 2, [("Margherita", 5500), ("Pepperoni", 6500)]),
    ("Asian", 3, [("Pad Thai", 6000), ("Chicken Teriyaki", 6200)]),
    ("Drinks", 4, [("Soda", 1250), ("Fresh Orange Juice", 1800), ("Water", 800)]),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


def _seed_demo_menu() -> int:
    created = 0
    for category_name, sort_order, products in DEMO_MENU:
        category = db.session.query(Category).filter_by(name=category_name).first()
        if category is None:
            category = Category(name=category_name, sort_order=sort_order)
            db.session.add(category)
            db.session.flush()
        for index, (name, price_cents) in enumerate(products):
            if db.session.query(Product).filter_by(name=name).first():
                continue
            db.session.add(
                Product(category_id=category.id, name=name, price_cents=price_cents, sort_order=index)
            )
            created += 1
    db.session.commit()
    return created


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main', help='Default branch name')
@click.option('--with-demo-menu/--no-demo-menu', default=True, help='Seed demo categories and products')
@with_appcontext
def init_system(branch_name, with_demo_menu):
    """
    Initialize QuickPOS: a default branch, default users and a demo menu.

    Users: manager@quickpos.local, cashier@quickpos.local
    All passwords default to: "Password123"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing QuickPOS...")

    branch = db.session.query(Branch).order_by(Branch.id.asc()).first()
    if not branch:
        branch = Branch(name=branch_name)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created default branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    click.echo("\nUSERS Creating default users...")
    default_users = [
        ("manager@quickpos.local", "Manager", ROLE_MANAGER, None),
        ("cashier@quickpos.local", "Cashier", ROLE_CASHIER, branch.id),
    ]
    for email, full_name, role, branch_id in default_users:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(email, DEFAULT_PASSWORD, role, full_name=full_name, branch_id=branch_id)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user '{email}': {str(e)}")

    if with_demo_menu:
        created = _seed_demo_menu()
        click.echo(f"\nMENU Seeded {created} demo products")

    click.echo("\n" + "="*60)
    click.echo("DONE QuickPOS Initialized Successfully!")
    click.echo("="*60)
    click.echo(f"\nBranch: {branch.name} (ID: {branch.id})")
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   manager -> manager@quickpos.local / {DEFAULT_PASSWORD}")
    click.echo(f"   cashier -> cashier@quickpos.local / {DEFAULT_PASSWORD}")
    click.echo("")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', default='', help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--branch-id', type=int, default=None, help='Branch (cashiers only see this branch)')
@with_appcontext
def create_user_cli(email, full_name, password, role, branch_id):
    """
    Create a new user.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(email, password, role, full_name=full_name, branch_id=branch_id)
        click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
        if user.branch_id:
            click.echo(f"     Branch ID: {user.branch_id}")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and branch."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<32} {'Role':<10} {'Branch':<20} {'Active'}")
    click.echo("="*90)

    for user in users:
        branch = db.session.get(Branch, user.branch_id) if user.branch_id else None
        branch_str = branch.name if branch else "all"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<32} {user.role:<10} {branch_str:<20} {active_str}")

    click.echo("="*90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
