# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/fahampesa/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "fahampesa:create_app" (PowerShell: $env:FLASK_APP="fahampesa:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Plans:
# - python -m flask plans show
#   Print the Free/Pro limits table.
# - python -m flask plans check --user-id U --feature products
#   Show a tenant's tier, usage and whether one more is allowed.
#
# Subscriptions:
# - python -m flask subscriptions expire
#   Mark active subscriptions past their end date as expired. Reads already
#   treat them as expired; this only tidies stored status.
# - python -m flask subscriptions list --user-id U
#   List a tenant's subscriptions with effective status.
#
# Inventory:
# - python -m flask alerts generate --user-id U [--branch-id B]
#   Refresh low-stock alerts for a tenant (optionally one branch).

import click
from flask.cli import with_appcontext

from .errors import FahamPesaError
from .extensions import db
from .services import inventory_service, plan_limits, subscription_service
from .time_utils import to_utc_z


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


@click.group('plans')
def plans_group():
    """Plan limit inspection."""


@plans_group.command('show')
def show_plans():
    """Print the limits table."""
    tiers = list(plan_limits.PLAN_LIMITS)
    click.echo(f"{'Feature':<16} " + " ".join(f"{tier:<12}" for tier in tiers))
    for feature, name in plan_limits.FEATURE_NAMES.items():
        values = " ".join(f"{str(plan_limits.PLAN_LIMITS[tier][feature]):<12}" for tier in tiers)
        click.echo(f"{name:<16} {values}")


@plans_group.command('check')
@click.option('--user-id', required=True, help='Tenant uid')
@click.option('--feature', required=True, type=click.Choice(sorted(plan_limits.FEATURE_NAMES)))
@with_appcontext
def check_plan(user_id, feature):
    """Show whether a tenant may use one more of a feature."""
    check = plan_limits.check_plan_limit(user_id, feature)
    click.echo(f"Tier: {check.tier}")
    click.echo(f"Usage: {check.current_usage} / {check.limit}")
    if check.allowed:
        click.echo("PASS Allowed")
    else:
        click.echo(f"FAIL {check.message}")


@click.group('subscriptions')
def subscriptions_group():
    """Subscription maintenance."""


@subscriptions_group.command('expire')
@with_appcontext
def expire_subscriptions():
    """Mark lapsed active subscriptions as expired."""
    count = subscription_service.expire_subscriptions()
    db.session.commit()
    click.echo(f"PASS Expired {count} subscription(s).")


@subscriptions_group.command('list')
@click.option('--user-id', required=True, help='Tenant uid')
@with_appcontext
def list_subscriptions(user_id):
    """List a tenant's subscriptions."""
    subscriptions = subscription_service.get_user_subscriptions(user_id)
    if not subscriptions:
        click.echo("No subscriptions.")
        return
    click.echo(f"{'ID':<38} {'Plan':<10} {'Status':<10} {'Ends'}")
    for subscription in subscriptions:
        status = subscription_service.effective_status(subscription)
        ends = to_utc_z(subscription.end_date) or '-'
        click.echo(f"{subscription.id:<38} {subscription.plan_type:<10} {status:<10} {ends}")


@click.group('alerts')
def alerts_group():
    """Inventory alert maintenance."""


@alerts_group.command('generate')
@click.option('--user-id', required=True, help='Tenant uid')
@click.option('--branch-id', default=None, help='Limit to one branch')
@with_appcontext
def generate_alerts(user_id, branch_id):
    """Refresh low-stock alerts."""
    try:
        alerts = inventory_service.generate_low_stock_alerts(user_id, branch_id)
        db.session.commit()
    except FahamPesaError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS {len(alerts)} active low-stock alert(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(plans_group)
    app.cli.add_command(subscriptions_group)
    app.cli.add_command(alerts_group)
