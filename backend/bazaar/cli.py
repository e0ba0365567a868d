# Overview: Flask CLI command groups for bootstrap, user inspection, and manufacturer account maintenance.

# backend/bazaar/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role MANUFACTURER]
#   List users with role and active status.
# - python -m flask users create --username admin2 --email admin2@bazaar.local --password "Password123" --role ADMIN
#   Create a user (prompts if options are omitted).
#
# Manufacturer accounts:
# - python -m flask manufacturers list [--status PENDING]
#   List manufacturers with verification status.
# - python -m flask manufacturers verify 3 --status APPROVED --notes "Documents checked"
#   Record a verification decision.
# - python -m flask manufacturers reset-password owner@factory.example
#   Issue a temporary password (printed once).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role, ManufacturerStatus
from .services.auth_service import create_user, find_by_username
from .services import manufacturer_service
from .validation import BazaarError


DEFAULT_ADMIN_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default='admin', help='Admin username')
@click.option('--email', default='admin@bazaar.local', help='Admin email')
@with_appcontext
def init_system(username, email):
    """
    Create tables and the default ADMIN account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing bazaar...")
    db.create_all()

    if find_by_username(username):
        click.echo(f"WARN  User '{username}' already exists, skipping...")
    else:
        try:
            create_user(
                username=username,
                email=email,
                password=DEFAULT_ADMIN_PASSWORD,
                role=Role.ADMIN,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{Role.ADMIN}'")
        except BazaarError as e:
            click.echo(f"FAIL Failed to create admin '{username}': {str(e)}")
            return

    click.echo("\nDONE System initialized")
    click.echo(f"   {username} -> {email} / {DEFAULT_ADMIN_PASSWORD}")
    click.echo("SECURITY Change this password immediately in production!")


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
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(Role.ALL)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new user.

    Password must be 8+ characters with at least one letter and one digit.
    Manufacturer logins should come from registration or provisioning so the
    profile link exists.
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except BazaarError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(Role.ALL)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with their role."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {user.role}")
    click.echo("="*90 + "\n")


@click.group('manufacturers')
def manufacturers_group():
    """Manufacturer verification and account commands."""


@manufacturers_group.command('list')
@click.option('--status', type=click.Choice(list(ManufacturerStatus.ALL)), help='Filter by status')
@with_appcontext
def list_manufacturers_cli(status):
    result = manufacturer_service.list_manufacturers(status=status)
    if not result["items"]:
        click.echo("No manufacturers found.")
        return

    for row in result["items"]:
        verified = "verified" if row["is_verified"] else "unverified"
        click.echo(f"{row['id']:<5} {row['company_name']:<30} {row['email']:<35} {row['status']:<10} {verified}")


@manufacturers_group.command('verify')
@click.argument('manufacturer_id', type=int)
@click.option('--status', type=click.Choice(list(ManufacturerStatus.ALL)), required=True)
@click.option('--notes', default=None, help='Verification notes')
@with_appcontext
def verify_manufacturer_cli(manufacturer_id, status, notes):
    """Record a verification decision (no acting admin is recorded)."""
    try:
        manufacturer = manufacturer_service.verify_manufacturer(
            manufacturer_id, status=status, notes=notes
        )
        click.echo(f"PASS {manufacturer.company_name} is now {manufacturer.status}")
    except BazaarError as e:
        click.echo(f"FAIL {str(e)}")


@manufacturers_group.command('reset-password')
@click.argument('email')
@with_appcontext
def reset_password_cli(email):
    """Issue a temporary password for a manufacturer account."""
    try:
        user, temp_password = manufacturer_service.reset_manufacturer_password(email)
    except BazaarError as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Password reset for {user.username} ({user.email})")
    click.echo(f"     Temporary password: {temp_password}")
    click.echo("SECURITY Share it over a secure channel; it is not shown again.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(manufacturers_group)
