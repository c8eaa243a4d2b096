# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/haven/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin, owner and attendant.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and status.
# - python -m flask users create --username jane --full-name "Jane Doe" --email jane@haven.local --password "Password123!" --role OWNER
#   Create a user (prompts if options are omitted).
#
# Permission inspection:
# - python -m flask perms list [--role OWNER]
#   List the grants held by each role.
# - python -m flask perms check ATTENDANT create sales
#   Check whether a role may perform an action on a subject.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete expired or revoked sessions older than the window.
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.
# - python -m flask maintenance run-all
#   Run both sweeps with their default windows.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import Role, all_roles, can, grants_for
from .services.auth_service import create_user, PasswordValidationError
from .services import maintenance_service
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the Antique Haven backend: tables and default users.

    Creates:
    - All tables (no-op for tables that exist)
    - Users: admin/admin@haven.local, owner/owner@haven.local, attendant/attendant@haven.local
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing Antique Haven...")

    db.create_all()
    click.echo("PASS Tables ready")

    default_password = "Password123!"

    default_users = [
        ("admin", "Shop Administrator", "admin@haven.local", Role.ADMIN),
        ("owner", "Shop Owner", "owner@haven.local", Role.OWNER),
        ("attendant", "Floor Attendant", "attendant@haven.local", Role.ATTENDANT),
    ]

    click.echo("\nUSERS Creating default users...")
    for username, full_name, email, role in default_users:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue

        try:
            create_user(
                username=username,
                full_name=full_name,
                email=email,
                password=default_password,
                role=role.value,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role.value}'")
        except (PasswordValidationError, ValidationError, ConflictError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE Antique Haven Initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin     -> admin@haven.local     / Password123!")
    click.echo("   owner     -> owner@haven.local     / Password123!")
    click.echo("   attendant -> attendant@haven.local / Password123!")
    click.echo("")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(all_roles(), case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, full_name, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            full_name=full_name,
            email=email,
            password=password,
            role=role,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Status'}")
    click.echo("="*90)

    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {user.status}")

    click.echo("="*90 + "\n")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(all_roles(), case_sensitive=False), help='Only this role')
def list_perms_cli(role):
    """List (action, subject) grants per role."""
    roles = [role.upper()] if role else all_roles()

    for name in roles:
        click.echo(f"\n{name}")
        for grant in grants_for(name):
            click.echo(f"  {grant.action:<10} {grant.subject}")
    click.echo("")


@perms_group.command('check')
@click.argument('role')
@click.argument('action')
@click.argument('subject')
def check_permission_cli(role, action, subject):
    """Check whether ROLE may perform ACTION on SUBJECT."""
    if can(role, action, subject):
        click.echo(f"PASS {role.upper()} CAN {action} {subject}")
    else:
        click.echo(f"FAIL {role.upper()} CANNOT {action} {subject}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked sessions."""
    try:
        deleted = maintenance_service.cleanup_sessions(older_than_days=older_than_days)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"Deleted {deleted} sessions older than {older_than_days} days.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """Delete security events older than the retention window."""
    try:
        deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('run-all')
@click.option('--session-days', type=int, default=30, show_default=True)
@click.option('--event-days', type=int, default=90, show_default=True)
@with_appcontext
def run_all_cli(session_days, event_days):
    """Run every retention sweep."""
    try:
        counts = maintenance_service.run_all(session_days=session_days, event_days=event_days)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    for table, deleted in counts.items():
        click.echo(f"{table}: deleted {deleted}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(maintenance_group)
