# Overview: Flask CLI command groups for bootstrap, reminders and webhook maintenance.

# backend/academy/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@ttnts.local]
#   Create tables (if missing) and a default admin user.
#
# Users:
# - python -m flask users list
# - python -m flask users create --email coach@ttnts.local --password "Password123!" --role coach
#
# Reminders (run daily from cron):
# - python -m flask reminders balance
#   Balance reminders for deposit bookings due in 7, 3, 1 or 0 days.
# - python -m flask reminders sessions
#   Reminders for every confirmed booking with a session tomorrow.
#
# Webhooks:
# - python -m flask webhooks failed [--limit 50]
#   List webhook events whose processing failed.
# - python -m flask webhooks replay EVENT_ID
#   Re-run a failed event from its stored payload.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired and revoked login sessions.
# - python -m flask maintenance expire-payment-links
#   Mark payment links past their expiry as expired.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import payment_link_service, reminders_service, session_service, webhook_service
from .services.auth_service import ROLE_ADMIN, ROLES, create_user
from .validation import DomainError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@ttnts.local', help='Email for the default admin')
@click.option('--admin-password', default='Password123!', help='Password for the default admin')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Create all tables and a default admin.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing academy backend...")
    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{admin_email}' already exists, skipping...")
        return
    try:
        create_user(admin_email, admin_password, role=ROLE_ADMIN, first_name="Admin")
    except DomainError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created admin user {admin_email}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = db.session.query(User).order_by(User.email).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<40} {user.role:<8} {status}")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--first-name', default=None, help='First name')
@click.option('--last-name', default=None, help='Last name')
@with_appcontext
def create_user_cli(email, password, role, first_name, last_name):
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
        user = create_user(email, password, role=role, first_name=first_name, last_name=last_name)
    except DomainError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@click.group('reminders')
def reminders_group():
    """Scheduled reminder emails."""


@reminders_group.command('balance')
@with_appcontext
def balance_reminders_cli():
    run = reminders_service.send_balance_reminders()
    click.echo(f"PASS Balance reminders: {run.processed} processed, {run.sent} sent")
    for error in run.errors:
        click.echo(f"FAIL {error}")


@reminders_group.command('sessions')
@with_appcontext
def session_reminders_cli():
    run = reminders_service.send_session_reminders()
    click.echo(f"PASS Session reminders: {run.processed} processed, {run.sent} sent")
    for error in run.errors:
        click.echo(f"FAIL {error}")


@click.group('webhooks')
def webhooks_group():
    """Webhook event review and replay."""


@webhooks_group.command('failed')
@click.option('--limit', default=50, type=int, help='Maximum events to list')
@with_appcontext
def failed_webhooks_cli(limit):
    events = webhook_service.list_events(status=webhook_service.EVENT_FAILED, limit=limit)
    if not events:
        click.echo("No failed webhook events.")
        return
    for event in events:
        click.echo(f"{event.id}  {event.event_type:<32} attempts={event.attempts}  {event.error or ''}")


@webhooks_group.command('replay')
@click.argument('event_id')
@with_appcontext
def replay_webhook_cli(event_id):
    try:
        outcome = webhook_service.replay_event(event_id)
    except DomainError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"{'PASS' if outcome.status != webhook_service.EVENT_FAILED else 'FAIL'} {event_id}: {outcome.status}")


@click.group('maintenance')
def maintenance_group():
    """Periodic cleanup commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired sessions")


@maintenance_group.command('expire-payment-links')
@with_appcontext
def expire_payment_links_cli():
    expired = payment_link_service.expire_payment_links()
    click.echo(f"PASS Expired {expired} payment links")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reminders_group)
    app.cli.add_command(webhooks_group)
    app.cli.add_command(maintenance_group)
