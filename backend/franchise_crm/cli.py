# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/franchise_crm/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users create-hq --email hq@example.com --password "secret1" --name "Head Office" --phone "010-0000-0000"
#   Create an approved HQ user. This is how the first approver comes to exist.
# - python -m flask users list [--pending]
#   List profiles with role, branch and approval state.
# - python -m flask users approve someone@example.com [--approver hq@example.com]
#   Approve a profile from the command line (needs an approved HQ user).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete expired or revoked session tokens.
# - python -m flask maintenance cleanup-security-events --retention-days 90 [--event-type ACCESS_DENIED]
#   Delete security events older than the retention window.
# - python -m flask maintenance cleanup-invitations --older-than-days 30
#   Delete unused invitations that expired more than N days ago.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Profile
from .roles import Role
from .services import approval_service, auth_service, maintenance_service, session_service
from .time_utils import utcnow
from .validation import AuthorizationError, ConflictError, NotFoundError, ValidationError, normalize_email


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables (use migrations for schema changes)."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create-hq' to bootstrap.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-hq')
@click.option('--email', prompt=True, help='Login email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', prompt=True, help='Display name')
@click.option('--phone', prompt=True, help='Contact phone')
@with_appcontext
def create_hq(email, password, name, phone):
    """
    Create an approved HQ profile.

    Self-registered HQ users start unapproved like everyone else, so the
    first HQ approver has to be created here.
    """
    try:
        identity = auth_service.create_identity(
            email, password, {"name": name, "phone": phone, "role": Role.HQ.value}
        )
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    now = utcnow()
    profile = Profile(
        id=identity.id,
        email=identity.email,
        name=name,
        phone=phone,
        role=Role.HQ.value,
        branch_id=None,
        approved=True,
        approved_at=now,
    )
    db.session.add(profile)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        auth_service.delete_identity(identity.id)
        raise

    click.echo(f"PASS Created HQ user: {profile.email} (ID: {profile.id})")


@users_group.command('list')
@click.option('--pending', is_flag=True, help='Only unapproved profiles')
@with_appcontext
def list_users(pending):
    """List profiles with role, branch and approval state."""
    query = db.session.query(Profile)
    if pending:
        query = query.filter(Profile.approved.is_(False))
    profiles = query.order_by(Profile.created_at.asc(), Profile.id.asc()).all()

    if not profiles:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Email':<32} {'Name':<20} {'Role':<7} {'Branch':<12} {'Approved'}")
    click.echo("="*90)
    for profile in profiles:
        branch = profile.branch.code if profile.branch else "-"
        approved = "yes" if profile.approved else "PENDING"
        click.echo(f"{profile.id:<6} {profile.email:<32} {profile.name:<20} {profile.role:<7} {branch:<12} {approved}")
    click.echo("="*90 + "\n")


@users_group.command('approve')
@click.argument('email')
@click.option('--approver', 'approver_email', default=None, help='Approving HQ email (default: first approved HQ)')
@with_appcontext
def approve_user(email, approver_email):
    """
    Approve a profile by email.

    Goes through the same approval path as the API, so the decision is
    stamped and recorded in approval_history against an approved HQ.
    """
    profile = db.session.query(Profile).filter_by(email=normalize_email(email)).first()
    if not profile:
        click.echo(f"FAIL No profile for {email}")
        raise SystemExit(1)

    approvers = db.session.query(Profile).filter(
        Profile.role == Role.HQ.value,
        Profile.approved.is_(True),
    )
    if approver_email:
        approver = approvers.filter(Profile.email == normalize_email(approver_email)).first()
    else:
        approver = approvers.filter(Profile.id != profile.id).order_by(Profile.id.asc()).first()
    if not approver:
        click.echo("FAIL No approved HQ user to record the approval; run 'users create-hq' first")
        raise SystemExit(1)

    try:
        approval_service.set_approval(approver, profile.id, True, reason="Approved via CLI")
    except (ValidationError, NotFoundError, AuthorizationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Approved {profile.email} ({profile.role}) by {approver.email}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked session tokens."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} expired or revoked sessions.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@click.option('--event-type', 'event_types', multiple=True, help='Only prune these event types')
@with_appcontext
def cleanup_security_events_cli(retention_days, event_types):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(
        retention_days=retention_days,
        event_types=list(event_types) or None,
    )
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('cleanup-invitations')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_invitations_cli(older_than_days):
    """Delete unused invitations that expired long ago."""
    deleted = maintenance_service.cleanup_expired_invitations(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} expired invitations.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
