# Overview: Flask CLI command groups for bootstrap, stock loading and inspection.

# backend/subshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@subshop.local]
#   Idempotent bootstrap: creates tables, store settings, flash sale config and an admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --email admin@subshop.local --password "Password123"
#   Create an admin, or promote an existing account.
# - python -m flask users list
#
# Stock:
# - python -m flask stock import --product-id 3 keys.txt
#   Load one key per line (or username:password per line for CREDENTIALS products).
# - python -m flask stock show --product-id 3
#
# Flash sale:
# - python -m flask flash-sale show
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import StoreError
from .models import User
from .models.catalog import DELIVERY_CREDENTIALS
from .services import auth_service, flash_sale_service, product_service, session_service, settings_service, stock_service


DEFAULT_ADMIN_EMAIL = "admin@subshop.local"
DEFAULT_ADMIN_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=DEFAULT_ADMIN_EMAIL, show_default=True, help='Admin email')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, show_default=True, help='Admin password')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Initialize SubShop: tables, store settings, flash sale config, admin user.

    SECURITY: Change the default admin password immediately in production!
    """
    click.echo("START Initializing SubShop...")

    db.create_all()
    click.echo("PASS Tables ready")

    settings_service.get_settings()
    click.echo("PASS Store settings ready")

    config = flash_sale_service.get_config()
    click.echo(f"PASS Flash sale config ready (version {config.version})")

    existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        if not existing.is_admin:
            auth_service.set_admin(existing.id, True)
            click.echo(f"PASS Promoted {existing.email} to admin")
        else:
            click.echo(f"PASS Admin exists: {existing.email}")
    else:
        try:
            user = auth_service.create_user(admin_email, admin_password, full_name="Administrator", is_admin=True)
        except StoreError as e:
            raise click.ClickException(e.message)
        click.echo(f"PASS Created admin: {user.email}")

    click.echo("DONE SubShop initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', 'full_name', default=None, help='Full name')
@with_appcontext
def create_admin_cli(email, password, full_name):
    """Create an admin account, or promote an existing one."""
    existing = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if existing:
        auth_service.set_admin(existing.id, True)
        click.echo(f"PASS Promoted {existing.email} to admin (ID: {existing.id})")
        return

    try:
        user = auth_service.create_user(email, password, full_name=full_name, is_admin=True)
    except StoreError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created admin {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = auth_service.list_users()
    if not users:
        click.echo("No users found")
        return
    for u in users:
        flags = []
        if u.is_admin:
            flags.append("admin")
        if not u.is_active:
            flags.append("inactive")
        click.echo(f"{u.id:>5}  {u.email:<40} {', '.join(flags)}")


@click.group('stock')
def stock_group():
    """Stock key loading and inspection."""


def _parse_key_line(line: str, credentials: bool):
    if credentials and ":" in line:
        username, password = line.split(":", 1)
        return {"key_value": line, "username": username.strip(), "password": password.strip()}
    return line


@stock_group.command('import')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--variant-id', type=int, default=None, help='Variant ID (keys usable by this variant only)')
@click.argument('source', type=click.File('r'))
@with_appcontext
def import_keys(product_id, variant_id, source):
    """Load stock keys from a file, one per line (blank lines and #comments skipped)."""
    try:
        product = product_service.get_product(product_id)
    except StoreError as e:
        raise click.ClickException(e.message)

    credentials = product.delivery_type == DELIVERY_CREDENTIALS
    keys = [
        _parse_key_line(line.strip(), credentials)
        for line in source
        if line.strip() and not line.strip().startswith("#")
    ]
    if not keys:
        raise click.ClickException("No keys found in input")

    try:
        created = stock_service.add_stock_keys(product_id, keys, variant_id=variant_id)
    except StoreError as e:
        raise click.ClickException(f"{e.message} {e.details or ''}".strip())

    click.echo(f"PASS Imported {len(created)} keys into {product.name}")


@stock_group.command('show')
@click.option('--product-id', type=int, required=True, help='Product ID')
@with_appcontext
def show_stock(product_id):
    try:
        product = product_service.get_product(product_id)
    except StoreError as e:
        raise click.ClickException(e.message)
    stock = stock_service.available_stock(product)
    click.echo(f"{product.name}: source={stock['source']} available={stock['available']} low_stock={stock['low_stock']}")


@click.group('flash-sale')
def flash_sale_group():
    """Flash sale inspection."""


@flash_sale_group.command('show')
@with_appcontext
def show_flash_sale():
    state = flash_sale_service.public_state()
    click.echo(f"Version:  {state['version']}")
    click.echo(f"Enabled:  {state['enabled']}")
    click.echo(f"Active:   {state['is_active']}")
    click.echo(f"Ends at:  {state['end_time'] or '-'}")
    for item in state["products"]:
        click.echo(f"  product {item['product_id']}: -{item['discount_paise'] / 100:.2f} INR")


@click.group('maintenance')
def maintenance_group():
    """Maintenance and cleanup commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(retention_days):
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} old sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(flash_sale_group)
    app.cli.add_command(maintenance_group)
