# Overview: Flask CLI command groups for bootstrap, user inspection and ledger audits.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="backoffice:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Seed the demo branches, accounts, items, tables and the five demo users.
#   Idempotent: does nothing once subjects exist.
#
# User inspection/bootstrap:
# - python -m flask users list [--branch-id 1]
#   List subjects with role, branch and active status.
# - python -m flask users create --name "Jane" --email jane@restaurant.com --password secret1 --role manager --branch-id 1
#   Create a subject (prompts if options are omitted).
#
# Ledger inspection:
# - python -m flask ledger audit
#   Recompute balances, quantities, remaining amounts and net pay; exit 1 on drift.
# - python -m flask ledger balances [--branch-id 1]
#   Print every finance account with its balance.
#
# The entity store is in-memory by default, so these commands act on the
# dataset of the application instance the CLI creates. Point DATABASE_URL at
# a file to inspect a shared dataset.

import click
from flask import current_app
from flask.cli import with_appcontext

from .enums import Role
from .errors import BackOfficeError
from .models import Branch, FinanceAccount, Subject
from .services import auth_service, ledger_service


def _backoffice():
    return current_app.extensions["backoffice"]


# =============================================================================
# SYSTEM COMMANDS
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Full idempotent bootstrap: demo branches, accounts, items, tables, users.
    """
    from .demo_data import DEMO_USERS, seed_demo_data

    click.echo("START Initializing back office...")
    created = seed_demo_data(_backoffice())
    if not created["subjects"]:
        click.echo("WARN  Subjects already exist, nothing seeded")
        return

    for key, count in created.items():
        click.echo(f"PASS Created {count} {key}")

    click.echo("\n" + "="*60)
    click.echo("DONE Back office initialized")
    click.echo("="*60)
    click.echo("\nDemo credentials (CHANGE IN PRODUCTION!):")
    for _name, email, password, role, _branch, _phone, two_factor in DEMO_USERS:
        suffix = "  (2FA)" if two_factor else ""
        click.echo(f"   {str(role):<8} -> {email:<24} / {password}{suffix}")
    click.echo("")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """Subject inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--branch-id', type=int, help='Only subjects assigned to this branch')
@with_appcontext
def list_users(branch_id):
    """List all subjects with role, branch and active status."""
    store = _backoffice().store
    query = store.query(Subject)
    if branch_id is not None:
        query = query.filter(Subject.assigned_branch_id == branch_id)
    subjects = query.order_by(Subject.id).all()

    if not subjects:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<28} {'Role':<9} {'Branch':<8} {'2FA':<5} {'Active'}")
    click.echo("="*90)
    for subject in subjects:
        branch = subject.assigned_branch_id if subject.assigned_branch_id is not None else "-"
        click.echo(
            f"{subject.id:<5} {subject.name:<24} {subject.email:<28} {str(subject.role):<9} "
            f"{branch!s:<8} {'Yes' if subject.two_factor_enabled else 'No':<5} "
            f"{'Yes' if subject.is_active else 'No'}"
        )
    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@click.option('--branch-id', type=int, default=None, help='Assigned branch (omit for multi-branch)')
@click.option('--two-factor/--no-two-factor', default=False, help='Require a second factor at login')
@with_appcontext
def create_user_cli(name, email, password, role, branch_id, two_factor):
    """
    Create a subject.

    Password must be at least 6 characters. Staff accounts need a branch to
    see any data.
    """
    backoffice = _backoffice()
    with backoffice.store.writer_lock:
        try:
            subject = auth_service.register_subject(
                backoffice.store,
                name=name,
                email=email,
                password=password,
                role=role,
                assigned_branch_id=branch_id,
                two_factor_enabled=two_factor,
                rounds=backoffice.settings.bcrypt_rounds,
            )
        except BackOfficeError as e:
            backoffice.store.rollback()
            click.echo(f"FAIL Failed to create user: {e.message}")
            return

    click.echo(f"PASS Created user: {subject.name} ({subject.email}) with role '{subject.role}'")
    if subject.assigned_branch_id is not None:
        click.echo(f"     Branch: {subject.assigned_branch_id}")
    click.echo("SECURITY Password securely hashed with bcrypt")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('audit')
@with_appcontext
def audit_ledger_cli():
    """Recompute every derived ledger value and report drift."""
    drift = ledger_service.audit_ledger(_backoffice().store)
    if not drift:
        click.echo("PASS Ledger consistent: balances, quantities, debts and payroll match their history")
        return

    click.echo(f"FAIL {len(drift)} drifted value(s):")
    for row in drift:
        click.echo(
            f"   {row['entity_type']} {row['id']}: {row['field']} stored={row['stored']} expected={row['expected']}"
        )
    raise SystemExit(1)


@ledger_group.command('balances')
@click.option('--branch-id', type=int, help='Only accounts of this branch')
@with_appcontext
def list_balances(branch_id):
    """List finance accounts with their balances."""
    store = _backoffice().store
    query = store.query(FinanceAccount)
    if branch_id is not None:
        if store.get(Branch, branch_id) is None:
            click.echo(f"FAIL Branch ID {branch_id} not found")
            return
        query = query.filter(FinanceAccount.branch_id == branch_id)
    accounts = query.order_by(FinanceAccount.branch_id, FinanceAccount.id).all()

    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Branch':<8} {'Name':<28} {'Type':<14} {'Active':<8} {'Balance':>14}")
    click.echo("="*80)
    for account in accounts:
        click.echo(
            f"{account.id:<5} {account.branch_id:<8} {account.name:<28} {str(account.type):<14} "
            f"{'Yes' if account.is_active else 'No':<8} {account.balance:>14} {account.currency}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
