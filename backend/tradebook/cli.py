# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tradebook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin --admin-password "..."]
#   Idempotent bootstrap: creates tables, invoice number sequences and the first Admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username ali --fullname "Ali Raza" --role Worker
#
# Invoices:
# - python -m flask invoices refresh-statuses
#   Re-derive the stored status of every open invoice and broker account
#   (marks invoices whose due date has passed as overdue). Run daily.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired and revoked sessions older than 30 days.

import click
from flask.cli import with_appcontext

from .exceptions import TradebookError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLES
from .services import session_service, user_service
from .services.document_service import ensure_sequences
from .services.invoice_service import refresh_overdue_statuses


@click.group("system")
def system_group():
    """System bootstrap and repair commands."""


@system_group.command("init")
@click.option("--admin-username", default="admin", show_default=True, help="Username of the first Admin")
@click.option("--admin-fullname", default="Administrator", show_default=True)
@click.option("--admin-password", default="Password123!", show_default=True, help="Change it after first login")
@with_appcontext
def init_system(admin_username, admin_fullname, admin_password):
    """
    Initialize the back office.

    Creates:
    - All tables (no-op for existing ones)
    - Invoice number sequences (VIN / CIN / CMS), seeded past any number already issued
    - An Admin user, unless one exists

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing tradebook...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = ensure_sequences()
    click.echo(f"PASS Invoice sequences ready ({created} created)")

    if db.session.query(User).filter(User.role == ROLE_ADMIN).first():
        click.echo("WARN  An Admin user already exists, skipping...")
    else:
        try:
            user_service.create_user({
                "username": admin_username,
                "fullname": admin_fullname,
                "password": admin_password,
                "role": ROLE_ADMIN,
            })
        except TradebookError as e:
            click.echo(f"FAIL Failed to create admin '{admin_username}': {e}")
            return
        click.echo(f"PASS Created admin user: {admin_username}")
        click.echo("\nSECURITY WARNING: change the admin password after the first login!")

    click.echo("DONE Tradebook initialized.")


@system_group.command("reset-db")
@click.option("--yes", is_flag=True, help="Skip confirmation")
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


@click.group("users")
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command("create")
@click.option("--username", prompt=True, help="Username")
@click.option("--fullname", prompt=True, help="Full name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Password")
@click.option("--role", type=click.Choice(list(ROLES)), prompt=True, help="Role")
@with_appcontext
def create_user_cli(username, fullname, password, role):
    """
    Create a new user interactively.

    Workers start without permissions; grant them through the API.
    """
    try:
        user = user_service.create_user({
            "username": username,
            "fullname": fullname,
            "password": password,
            "role": role,
        })
    except TradebookError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command("list")
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = user_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Full name':<30} {'Role':<8} {'Active'}")
    click.echo("=" * 80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.fullname:<30} {user.role:<8} {active_str}")

    click.echo("=" * 80 + "\n")


@click.group("invoices")
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command("refresh-statuses")
@with_appcontext
def refresh_statuses_cli():
    """Re-derive stored invoice and broker statuses (overdue detection)."""
    changed = refresh_overdue_statuses()
    click.echo(f"Updated {changed} statuses.")


@click.group("maintenance")
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command("cleanup-sessions")
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired and revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} old sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(maintenance_group)
