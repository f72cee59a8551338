# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#
# Users (accounts mirror the identity provider):
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --email owner@acme.ma --role SUPER_ADMIN
#
# Bearer tokens:
# - python -m flask tokens issue --user-id 1
#   Mint a token on behalf of the identity provider (printed once).
# - python -m flask tokens revoke-all --user-id 1
#
# Arrivage totals:
# - python -m flask arrivages recalc --org-id 1 --id 4
# - python -m flask arrivages recalc --org-id 1 --all
#
# Permission inspection:
# - python -m flask perms list [--role ADMIN]

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .errors import StockroomError
from .models import User, Organization, Arrivage
from .permissions import Role, PERMISSION_DEFINITIONS, get_role_permissions
from .services import session_service
from .services.cost_aggregator import ArrivageCostAggregator


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
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

    click.echo("PASS Database reset complete.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("="*70)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {user_count}")

    click.echo("="*70 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', default=None, help='Display name')
@click.option('--external-id', default=None, help='Subject id at the identity provider')
@click.option('--role', type=click.Choice([r.value for r in Role]), default=Role.STAFF.value, show_default=True)
@with_appcontext
def create_user_cli(org_id, email, full_name, external_id, role):
    """Create a user inside an organization."""
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        click.echo(f"FAIL Organization {org_id} not found")
        return

    user = User(
        org_id=org.id,
        email=email.strip().lower(),
        full_name=full_name,
        external_id=external_id,
        role=Role.parse(role),
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        click.echo(f"FAIL A user with email '{email}' already exists in {org.name}")
        return

    click.echo(f"PASS Created user {user.email} (ID: {user.id}, Role: {user.role.value}, Org: {org.name})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with roles and active status."""
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(org_id=org_id)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<12} {'Org':<6} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role.value:<12} {user.org_id or '-':<6} {active_str}")
    click.echo("="*80 + "\n")


@click.group('tokens')
def tokens_group():
    """Bearer token commands."""


@tokens_group.command('issue')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def issue_token_cli(user_id):
    """Mint a bearer token for a user. The plaintext is shown only once."""
    try:
        record, plaintext = session_service.create_session(user_id)
    except StockroomError as exc:
        click.echo(f"FAIL {exc.message}")
        return

    click.echo(f"PASS Token for user {user_id} (expires {record.expires_at.isoformat()}):")
    click.echo(plaintext)


@tokens_group.command('revoke-all')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def revoke_tokens_cli(user_id):
    """Revoke every live token of a user."""
    count = session_service.revoke_all_user_sessions(user_id)
    click.echo(f"PASS Revoked {count} token(s) for user {user_id}")


@click.group('arrivages')
def arrivages_group():
    """Arrivage maintenance commands."""


@arrivages_group.command('recalc')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--id', 'arrivage_id', type=int, help='Arrivage ID')
@click.option('--all', 'recalc_all', is_flag=True, help='Recalculate every arrivage of the organization')
@with_appcontext
def recalc_arrivages_cli(org_id, arrivage_id, recalc_all):
    """Recompute stored totals from lots, fixed costs and expenses."""
    if not arrivage_id and not recalc_all:
        raise click.UsageError("Pass --id or --all")

    if recalc_all:
        ids = [
            row.id for row in
            db.session.query(Arrivage.id).filter_by(org_id=org_id).order_by(Arrivage.id).all()
        ]
    else:
        ids = [arrivage_id]

    aggregator = ArrivageCostAggregator(db.session)
    try:
        arrivages = aggregator.recalculate_many(ids, org_id=org_id)
        db.session.commit()
    except StockroomError as exc:
        db.session.rollback()
        click.echo(f"FAIL {exc.message}")
        return

    for arrivage in arrivages:
        click.echo(
            f"PASS {arrivage.reference}: {arrivage.total_cost_eur} EUR / {arrivage.total_cost_dh} DH "
            f"({arrivage.product_count} products, {arrivage.total_units} units)"
        )


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice([r.value for r in Role]), help='Filter by role')
def list_permissions_cli(role):
    """List permissions, optionally only those a role holds."""
    if role:
        granted = set(get_role_permissions(role))
        definitions = [perm for perm in PERMISSION_DEFINITIONS if perm[0] in granted]
        title = f"Permissions for role: {role}"
    else:
        definitions = PERMISSION_DEFINITIONS
        title = "All Permissions"

    click.echo(f"\n{'='*80}")
    click.echo(title)
    click.echo(f"{'='*80}\n")

    current_category = None
    for code, name, _description, category in definitions:
        if category != current_category:
            if current_category:
                click.echo("")
            click.echo(f"CATEGORY {category}")
            click.echo("-"*80)
            current_category = category
        click.echo(f"  {code.value:<28} {name}")

    click.echo(f"\n Total: {len(definitions)} permissions\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(arrivages_group)
    app.cli.add_command(perms_group)
