# Overview: Flask CLI command groups for database bootstrap and ledger inspection.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# - flask --app shopledger system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - flask --app shopledger system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app shopledger inventory low-stock
#   Products below their minimum stock threshold, largest deficit first.
# - flask --app shopledger inventory set --product-id 1 --quantity 12.5 [--note "..."]
#   Set absolute stock through an ADJUSTMENT transaction.
# - flask --app shopledger reports summary --start 2026-01-01 --end 2026-01-31
#   Sales total, order count and base-unit quantity for confirmed orders.
# - flask --app shopledger reports profit --start 2026-01-01 --end 2026-01-31
#   Gross profit using current purchase prices.
# - flask --app shopledger reports top --start 2026-01-01 --end 2026-01-31 [--limit 10]
#   Best sellers by base-unit quantity.

import click
from flask.cli import with_appcontext

from .extensions import db
from .validation import LedgerError


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
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


@click.group('inventory')
def inventory_group():
    """Stock inspection and adjustment."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """List products strictly below their minimum stock threshold."""
    from .services.inventory_service import get_low_stock_products

    rows = get_low_stock_products()
    if not rows:
        click.echo("No low-stock products.")
        return

    click.echo(f"{'CODE':<10} {'NAME':<30} {'ON HAND':>12} {'MIN':>12} {'DEFICIT':>12}")
    for row in rows:
        product = row["product"]
        quantity = row["inventory"].quantity if row["inventory"] else 0
        click.echo(
            f"{product.code:<10} {product.name[:30]:<30} {quantity:>12} "
            f"{product.min_stock_threshold:>12} {row['deficit']:>12}"
        )


@inventory_group.command('set')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', required=True, help='New quantity in base units')
@click.option('--note', default=None, help='Transaction note')
@with_appcontext
def set_quantity_cli(product_id, quantity, note):
    """Set a product's stock to an absolute quantity."""
    from .services.inventory_service import set_inventory_quantity

    try:
        record = set_inventory_quantity(product_id, quantity, note=note)
    except LedgerError as e:
        click.echo(f"FAIL Error: {e.message}")
        raise click.exceptions.Exit(1)
    click.echo(f"PASS Product {product_id} now has {record.quantity} on hand.")


@click.group('reports')
def reports_group():
    """Sales statistics over confirmed orders."""


def _run_report(func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except LedgerError as e:
        click.echo(f"FAIL Error: {e.message}")
        raise click.exceptions.Exit(1)


@reports_group.command('summary')
@click.option('--start', required=True, help='ISO date/datetime (inclusive)')
@click.option('--end', required=True, help='ISO date/datetime (inclusive)')
@with_appcontext
def summary_cli(start, end):
    from .services.statistics_service import get_sales_summary

    summary = _run_report(get_sales_summary, start, end)
    click.echo(f"Total sales:    {summary['total_sales']}")
    click.echo(f"Total orders:   {summary['total_orders']}")
    click.echo(f"Total quantity: {summary['total_quantity']}")


@reports_group.command('profit')
@click.option('--start', required=True, help='ISO date/datetime (inclusive)')
@click.option('--end', required=True, help='ISO date/datetime (inclusive)')
@with_appcontext
def profit_cli(start, end):
    """Gross profit for confirmed sales in the range."""
    from .services.statistics_service import calculate_gross_profit

    result = _run_report(calculate_gross_profit, start, end)
    click.echo(f"Total sales:   {result['total_sales']}")
    click.echo(f"Total cost:    {result['total_cost']}")
    click.echo(f"Gross profit:  {result['gross_profit']}")
    click.echo(f"Profit margin: {result['profit_margin']}%")


@reports_group.command('top')
@click.option('--start', required=True, help='ISO date/datetime (inclusive)')
@click.option('--end', required=True, help='ISO date/datetime (inclusive)')
@click.option('--limit', type=int, default=None, help='Number of products (default from config)')
@with_appcontext
def top_cli(start, end, limit):
    from .services.statistics_service import get_top_selling_products

    rows = _run_report(get_top_selling_products, start, end, limit)
    if not rows:
        click.echo("No confirmed sales in range.")
        return
    for rank, row in enumerate(rows, start=1):
        product = row["product"]
        click.echo(
            f"{rank:>3}. {product.code:<10} {product.name[:30]:<30} "
            f"{row['quantity']:>12} {product.base_unit:<6} {row['sales']:>12}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
