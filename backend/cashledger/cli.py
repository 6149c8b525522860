# Overview: Flask CLI command groups for bootstrap, inspection, and outbox maintenance.

# backend/cashledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Register inspection/bootstrap:
# - python -m flask registers list [--all]
#   List registers with their replayed drawer status.
# - python -m flask registers create --number "REG-01" --name "Front Counter 1" --location "Main Floor"
#
# Ledger inspection:
# - python -m flask ledger balance 1
# - python -m flask ledger history 1
#
# Sales feed (checkout integration / manual correction):
# - python -m flask sales record --total 4000 --method cash --register-id 1
# - python -m flask sales void 12
#
# Outbox:
# - python -m flask outbox status
# - python -m flask outbox drain [--batch-size 50]
#   Push pending ledger events to REMOTE_STORE_URL once.
# - python -m flask outbox pull 1
#   Import events for register 1 that other terminals wrote to the remote store.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import CashLedgerError
from .validation import ValidationError
from .services import register_service, ledger_service, outbox_service, reporting_service, sales_feed, event_store
from .services.remote_store import RemoteEventStore, RemoteStoreError
from .models.sales import PAYMENT_METHODS


def _cents(value) -> str:
    return f"{value / 100:,.2f}"


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

    This will DELETE ALL DATA, including ledger events not yet pushed to the
    remote store!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    from .extensions import replay_cache
    replay_cache.clear()

    click.echo("PASS Database reset complete.")


@click.group('registers')
def registers_group():
    """Register inspection and bootstrap commands."""


@registers_group.command('create')
@click.option('--number', required=True, help='Register number, unique among live registers')
@click.option('--name', required=True, help='Register name')
@click.option('--location', help='Location in store')
@with_appcontext
def create_register_cli(number, name, location):
    """
    Create a new POS register.

    Example:
        flask registers create --number REG-01 --name "Front Counter 1" --location "Main Floor"
    """
    try:
        register = register_service.create_register(
            register_number=number,
            name=name,
            location=location,
        )

        click.echo(f"PASS Created register: {register.register_number} - {register.name}")
        click.echo(f"   Location: {register.location or 'Not specified'}")
        click.echo(f"   Register ID: {register.id}")

    except (CashLedgerError, ValidationError) as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)


@registers_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive registers too')
@with_appcontext
def list_registers_cli(show_all):
    """
    List live registers.

    Example:
        flask registers list
        flask registers list --all
    """
    registers = register_service.list_registers(include_inactive=show_all)

    if not registers:
        click.echo("No registers found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Number':<12} {'Name':<25} {'Location':<20} {'Operator':<15} {'Status':<8} {'Balance'}")
    click.echo("="*110)

    for register in registers:
        session = ledger_service.get_session(register.id)
        status = "OPEN" if session.is_open else "CLOSED"
        location = register.location or "-"
        operator = register.assigned_operator_name or register.assigned_operator_id or "-"

        click.echo(
            f"{register.id:<5} {register.register_number:<12} {register.name:<25} {location:<20} "
            f"{operator:<15} {status:<8} {_cents(session.balance_cents)}"
        )

    click.echo("="*110 + "\n")


@click.group('ledger')
def ledger_group():
    """Cash ledger inspection commands."""


@ledger_group.command('balance')
@click.argument('register_id', type=int)
@with_appcontext
def ledger_balance_cli(register_id):
    """Show the replayed drawer state of a register."""
    try:
        session = ledger_service.get_session(register_id)
    except CashLedgerError as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)

    state = session.state
    click.echo(f"Register {register_id}: {'OPEN' if session.is_open else 'CLOSED'}")
    if session.is_open:
        click.echo(f"   Opened at: {state.opened_at} by {state.opened_by}")
        click.echo(f"   Opening cash: {_cents(state.opening_cash_cents)}")
        click.echo(f"   Ledger balance: {_cents(state.balance_cents)}")
        click.echo(f"   Cash sales: {_cents(session.cash_sales_cents)}")
    click.echo(f"   Balance: {_cents(session.balance_cents)}")


@ledger_group.command('history')
@click.argument('register_id', type=int)
@with_appcontext
def ledger_history_cli(register_id):
    """Print a register's ledger grouped by day, newest day first."""
    try:
        days = reporting_service.register_history(register_id)
    except CashLedgerError as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)

    if not days:
        click.echo("No ledger events.")
        return

    for day in days:
        click.echo(f"\n{day['date']}")
        for op in day["operations"]:
            line = f"   #{op['id']:<6} {op['occurred_at']:<30} {op['kind']:<11} {_cents(op['amount_cents']):>12}  {op['operator_id']}"
            if op.get("shortage_cents"):
                line += f"  SHORT {_cents(op['shortage_cents'])} ({op.get('discrepancy_reason') or 'no reason'})"
            click.echo(line)
    click.echo("")


@click.group('sales')
def sales_group():
    """Sales feed commands."""


@sales_group.command('record')
@click.option('--total', 'total_cents', type=int, required=True, help='Sale total in cents')
@click.option('--method', 'payment_method', type=click.Choice(PAYMENT_METHODS), required=True)
@click.option('--register-id', type=int, help='Register the sale was rung on')
@click.option('--operator-id', help='Operator who rang the sale')
@click.option('--cash', 'cash_cents', type=int, help='Cash tender in cents (mixed payments)')
@with_appcontext
def record_sale_cli(total_cents, payment_method, register_id, operator_id, cash_cents):
    """
    Record a completed sale.

    Mixed payments take --cash; the rest of the total is booked as card.
    """
    tenders = None
    if payment_method == "mixed":
        if cash_cents is None:
            click.echo("FAIL Error: --cash is required for mixed payments")
            raise SystemExit(1)
        tenders = [
            {"method": "cash", "amount_cents": cash_cents},
            {"method": "credit_card", "amount_cents": total_cents - cash_cents},
        ]

    try:
        sale = sales_feed.record_sale(
            total_cents=total_cents,
            payment_method=payment_method,
            register_id=register_id,
            operator_id=operator_id,
            tenders=tenders,
        )
    except ValidationError as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Recorded sale {sale.id}: {_cents(sale.total_cents)} ({sale.payment_method})")


@sales_group.command('void')
@click.argument('sale_id', type=int)
@with_appcontext
def void_sale_cli(sale_id):
    """Void a sale so it no longer counts toward a drawer."""
    try:
        sale = sales_feed.void_sale(sale_id)
    except ValidationError as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)
    click.echo(f"PASS Voided sale {sale.id}")


@click.group('outbox')
def outbox_group():
    """Remote store synchronization commands."""


def _remote_or_exit() -> RemoteEventStore:
    remote = RemoteEventStore.from_config(current_app.config)
    if remote is None:
        click.echo("FAIL REMOTE_STORE_URL is not configured.")
        raise SystemExit(1)
    return remote


@outbox_group.command('status')
@with_appcontext
def outbox_status_cli():
    """Show outbox counts by status."""
    status = outbox_service.outbox_status()
    click.echo(f"Pending:      {status['pending']}")
    click.echo(f"In flight:    {status['in_flight']}")
    click.echo(f"Acknowledged: {status['acknowledged']}")
    if status["oldest_pending_at"]:
        click.echo(f"Oldest pending: {status['oldest_pending_at']}")


@outbox_group.command('drain')
@click.option('--batch-size', type=int, help='Max entries to push in this pass')
@with_appcontext
def outbox_drain_cli(batch_size):
    """Push due outbox entries to the remote store once."""
    with _remote_or_exit() as remote:
        result = outbox_service.drain_outbox(remote, batch_size=batch_size)

    click.echo(f"PASS Acknowledged {result.acknowledged}, failed {result.failed}, recovered {result.recovered}")
    for error in result.errors:
        click.echo(f"   FAIL {error}")


@outbox_group.command('pull')
@click.argument('register_id', type=int)
@with_appcontext
def outbox_pull_cli(register_id):
    """Import a register's events written by other terminals."""
    try:
        register_service.require_register(register_id)
        with _remote_or_exit() as remote:
            imported = event_store.pull_remote_events(remote, register_id)
    except (CashLedgerError, RemoteStoreError) as e:
        click.echo(f"FAIL Error: {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Imported {imported} remote events for register {register_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(outbox_group)
