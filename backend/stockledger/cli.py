# Overview: Flask CLI commands for bootstrap and ledger inspection.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "stockledger:create_app".
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask ledger balances --company-id 1 --as-of 2026-01-31 [--branch-id 2]
#   Print the reconstructed stock balance per product at the end of that day.
# - python -m flask ledger audit --company-id 1 --receipt-id 7
#   Print the transition history of a receipt, most recent first.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import audit_service, balance_service
from .services.errors import LedgerError
from .services.scope_service import Scope
from .time_utils import to_utc_z


@click.group('ledger')
def ledger_group():
    """Inventory ledger commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all ledger tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


@ledger_group.command('balances')
@click.option('--company-id', type=int, required=True, help='Company (tenant) ID')
@click.option('--branch-id', type=int, default=None, help='Restrict to one branch')
@click.option('--as-of', type=click.DateTime(formats=["%Y-%m-%d"]), required=True, help='Date (YYYY-MM-DD)')
@with_appcontext
def balances(company_id, branch_id, as_of):
    """Print stock balances as at the end of a day."""
    try:
        rows = balance_service.compute_balances(as_of.date(), Scope(company_id, branch_id))
    except LedgerError as e:
        raise click.ClickException(e.message)

    if not rows:
        click.echo("No products in scope")
        return

    click.echo(f"{'SKU':<16} {'NAME':<30} {'CURRENT':>8} {'SOLD+':>7} {'RCVD-':>7} {'RTN-':>6} {'BALANCE':>8}")
    for r in rows:
        flag = " *" if r.clamped else ""
        click.echo(
            f"{r.sku[:16]:<16} {r.name[:30]:<30} {r.current_stock:>8} {r.sales_after:>7} "
            f"{r.receipts_after:>7} {r.returns_after:>6} {r.balance_as_at:>8}{flag}"
        )

    summary = balance_service.summarize(rows)
    click.echo(f"\n{summary['product_count']} products, total balance {summary['total_balance']}")
    if summary["clamped_count"]:
        click.echo(f"WARN {summary['clamped_count']} balance(s) clamped to 0 (marked *)")


@ledger_group.command('audit')
@click.option('--company-id', type=int, required=True, help='Company (tenant) ID')
@click.option('--receipt-id', type=int, required=True, help='Receipt ID')
@with_appcontext
def audit(company_id, receipt_id):
    """Print the audit trail of a receipt."""
    try:
        entries = audit_service.list_audit(receipt_id, Scope(company_id, None))
    except LedgerError as e:
        raise click.ClickException(e.message)

    for entry in entries:
        click.echo(
            f"{to_utc_z(entry.created_at)}  {entry.action:<9} "
            f"{entry.from_status or '-'} -> {entry.to_status or '-'}  "
            f"user={entry.actor_user_id}" + (f"  note={entry.note}" if entry.note else "")
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
