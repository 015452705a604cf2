# Overview: Flask CLI command groups for bootstrap and tenant management.

# backend/gestock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that don't exist yet (use `flask db upgrade` once migrations exist).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#   Create a new tenant; prints its id (the value of the X-Tenant-Id header).
# - python -m flask tenants deactivate --code "ACME"
#   Block all requests for a tenant without deleting its data.

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Tenant


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create database tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset.')
@with_appcontext
def reset_db(yes):
    """Drop and recreate all tables (DEV/TEST only)."""
    if not yes:
        raise click.UsageError("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset complete.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.code).all()
    if not tenants:
        click.echo("No tenants found.")
        return
    for tenant in tenants:
        status = "active" if tenant.is_active else "inactive"
        click.echo(f"{tenant.id}  {tenant.code:<12} {tenant.name} ({status})")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant display name.')
@click.option('--code', required=True, help='Short unique code used in document numbers.')
@with_appcontext
def create_tenant(name, code):
    """Create a new tenant."""
    tenant = Tenant(name=name.strip(), code=code.strip().upper(), is_active=True)
    db.session.add(tenant)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Tenant code {code.upper()!r} already exists")
    click.echo(f"Created tenant {tenant.code}: {tenant.id}")


@tenants_group.command('deactivate')
@click.option('--code', required=True, help='Tenant code.')
@with_appcontext
def deactivate_tenant(code):
    """Deactivate a tenant."""
    tenant = db.session.query(Tenant).filter_by(code=code.strip().upper()).first()
    if tenant is None:
        raise click.ClickException(f"Tenant {code!r} not found")
    tenant.is_active = False
    db.session.commit()
    click.echo(f"Tenant {tenant.code} deactivated.")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
