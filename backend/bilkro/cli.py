# Overview: Flask CLI command groups for bootstrap, user management, and scheduled maintenance.

# backend/bilkro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and the default admin account (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username jane --email jane@bilkro.local --password "Password123!" [--admin]
# - python -m flask users set-admin jane [--revoke]
#
# Scheduled jobs (cron):
# - python -m flask debts sweep-overdue
#   Hourly: flip current debts past their due date to overdue.
# - python -m flask debts recompute-statuses
#   Repair: re-derive every debt status from balance and due date.
# - python -m flask carts expire [--ttl-days 7]
#   Daily: mark active carts untouched past the TTL as abandoned.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .errors import ServiceError
from .services import auth_service, cart_service, debt_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Default admin username')
@click.option('--admin-email', default='admin@bilkro.local', help='Default admin email')
@click.option('--admin-password', default='Password123!', help='Default admin password')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Create all tables and a default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing bilkro...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
        return

    try:
        user = auth_service.create_user(admin_username, admin_email, admin_password, is_admin=True)
    except ServiceError as e:
        click.echo(f"FAIL Failed to create admin '{admin_username}': {e.message}")
        return

    click.echo(f"PASS Created admin: {user.username} ({user.email})")
    click.echo("\nDefault credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   {admin_username} -> {admin_email} / {admin_password}")


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
@click.option('--admin', 'is_admin', is_flag=True, help='Grant admin access')
@with_appcontext
def create_user_cli(username, email, password, is_admin):
    """
    Create a new user.

    Password must be 8+ characters with an uppercase letter, a lowercase
    letter, a digit and a special character.
    """
    try:
        user = auth_service.create_user(username, email, password, is_admin=is_admin)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return
    role = "admin" if user.is_admin else "user"
    click.echo(f"PASS Created {role}: {user.username} ({user.email}) ID: {user.id}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Admin':<6} {'Active':<6}")
    click.echo("-" * 70)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.email:<30} "
            f"{'yes' if user.is_admin else 'no':<6} {'yes' if user.is_active else 'no':<6}"
        )


@users_group.command('set-admin')
@click.argument('username')
@click.option('--revoke', is_flag=True, help='Remove admin access instead')
@with_appcontext
def set_admin_cli(username, revoke):
    """Grant (or revoke) admin access."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    auth_service.set_admin(user.id, not revoke)
    click.echo(f"PASS {username} is_admin={not revoke}")


@click.group('debts')
def debts_group():
    """Debt ledger maintenance."""


@debts_group.command('sweep-overdue')
@with_appcontext
def sweep_overdue_cli():
    """Flip current debts past their due date to overdue. Safe to run repeatedly."""
    count = debt_service.sweep_overdue_debts()
    click.echo(f"PASS Marked {count} debt(s) overdue")


@debts_group.command('recompute-statuses')
@with_appcontext
def recompute_statuses_cli():
    """Re-derive every debt status from its balance and due date."""
    result = debt_service.recompute_debt_statuses()
    click.echo(f"PASS Checked {result['checked']} debt(s), updated {result['updated']}")


@click.group('carts')
def carts_group():
    """Cart maintenance."""


@carts_group.command('expire')
@click.option('--ttl-days', type=int, default=None, help='Override CART_TTL_DAYS')
@with_appcontext
def expire_carts_cli(ttl_days):
    """Mark stale active carts as abandoned."""
    count = cart_service.expire_stale_carts(ttl_days=ttl_days)
    click.echo(f"PASS Marked {count} cart(s) abandoned")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(debts_group)
    app.cli.add_command(carts_group)
