# Overview: Flask CLI command groups for bootstrap, user setup, sync maintenance and loan housekeeping.

# backend/jewelerp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=jewelerp (PowerShell: $env:FLASK_APP="jewelerp").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--branch "Main Branch"] [--state Gujarat]
#   Idempotent: creates the branch, stores branch_id, creates the admin user and sync status.
#
# Users:
# - python -m flask users create --username asha --email asha@shop.local --password "Password123!" --role cashier
#   Create a staff login (prompts if options are omitted).
#
# Sync:
# - python -m flask sync run
#   Run one push/pull cycle now.
# - python -m flask sync status
#   Print the branch sync status.
# - python -m flask sync cleanup --days 7
#   Delete synced queue rows older than N days.
# - python -m flask sync retry-failed
#   Move every failed queue row back to pending.
#
# Gold loans:
# - python -m flask loans refresh-overdue
#   Recompute overdue flags and risk levels on open loans.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, User
from .models.auth import ROLE_ADMIN, VALID_ROLES
from .services import gold_loan_service, sync_service
from .services.auth_service import AuthError, PasswordValidationError, create_user
from .services.branch_service import SETTING_BRANCH_ID, SETTING_BUSINESS_STATE, build_branch_context, set_setting


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main Branch', help='Branch name')
@click.option('--code', 'branch_code', default='MAIN', help='Branch code')
@click.option('--state', default=None, help='State the branch is registered in (GST place of supply)')
@click.option('--admin-password', default='Password123!', help='Password for the admin user')
@with_appcontext
def init_system(branch_name, branch_code, state, admin_password):
    """
    Initialize a fresh install: branch, settings, admin user and sync status.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing JewelERP...")

    branch = db.session.query(Branch).filter_by(name=branch_name).first()
    if not branch:
        branch = Branch(
            name=branch_name,
            code=branch_code,
            state=state or current_app.config.get("BUSINESS_STATE"),
            company_id=current_app.config.get("COMPANY_ID", 1),
        )
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    set_setting(SETTING_BRANCH_ID, branch.id)
    if state:
        set_setting(SETTING_BUSINESS_STATE, state)

    ctx = build_branch_context()
    if db.session.query(User).filter_by(username="admin").first():
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user(
                ctx,
                username="admin",
                email="admin@jewelerp.local",
                password=admin_password,
                role=ROLE_ADMIN,
                full_name="Administrator",
                branch_id=branch.id,
                bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
            )
            click.echo("PASS Created user: admin (admin@jewelerp.local)")
        except (AuthError, PasswordValidationError) as e:
            click.echo(f"FAIL Failed to create admin user: {e}")

    sync_service.get_or_create_status(ctx.branch_id)
    db.session.commit()
    click.echo(f"PASS Sync status ready for branch {ctx.branch_id}")
    click.echo("DONE JewelERP initialized")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """
    Create a new user in this install's branch.

    Password must be 8+ characters with upper, lower, digit and special character.
    """
    ctx = build_branch_context()
    try:
        user = create_user(
            ctx,
            username=username,
            email=email,
            password=password,
            role=role,
            full_name=full_name,
            bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
        )
    except (AuthError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group('sync')
def sync_group():
    """Cloud sync commands."""


@sync_group.command('run')
@with_appcontext
def sync_run():
    """Run one sync cycle now."""
    result = sync_service.perform_sync(build_branch_context())
    prefix = "PASS" if result["success"] else "FAIL"
    click.echo(f"{prefix} {result['message']} (pushed {result['pushed']}, pulled {result['pulled']})")


@sync_group.command('status')
@with_appcontext
def sync_status():
    """Show the sync status for this branch."""
    status = sync_service.get_sync_status(build_branch_context())
    for key in (
        "branch_id", "sync_enabled", "sync_interval_minutes", "cloud_configured",
        "is_syncing", "last_sync_at", "last_push_at", "last_pull_at",
        "pending_changes_count", "failed_changes_count", "last_sync_error",
    ):
        click.echo(f"{key:<24} {status.get(key)}")


@sync_group.command('cleanup')
@click.option('--days', default=sync_service.DEFAULT_RETENTION_DAYS, show_default=True, type=int,
              help='Keep synced rows newer than this many days')
@with_appcontext
def sync_cleanup(days):
    """Delete old synced queue rows."""
    deleted = sync_service.cleanup(build_branch_context(), days)
    click.echo(f"PASS Deleted {deleted} synced queue rows")


@sync_group.command('retry-failed')
@with_appcontext
def sync_retry_failed():
    """Requeue failed changes."""
    count = sync_service.retry_failed(build_branch_context())
    click.echo(f"PASS Reset {count} failed changes to pending")


@click.group('loans')
def loans_group():
    """Gold loan housekeeping commands."""


@loans_group.command('refresh-overdue')
@with_appcontext
def loans_refresh_overdue():
    """Recompute overdue status and risk level for open loans."""
    overdue = gold_loan_service.refresh_overdue_status(build_branch_context())
    click.echo(f"PASS {len(overdue)} loans overdue")
    for loan in overdue:
        click.echo(f"  {loan.loan_number:<20} {loan.customer_name:<30} {loan.days_overdue:>4} days  {loan.risk_level}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(loans_group)
