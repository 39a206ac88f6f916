# Overview: Flask CLI command groups for tenant bootstrap, ledger checks and outbox replay.

# backend/parts_erp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` with migrations otherwise).
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Garage Auto" --code "GA"
#
# Stock ledger:
# - python -m flask stock verify --company-id 1 [--product-id 7]
#   Replay stock movements and compare with products' quantity on hand.
#
# Outbox:
# - python -m flask outbox dispatch [--pending-only] [--limit 100]
#   Re-run post-commit follow-up work (financial stats, invoices).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, Product
from .services import outbox_service
from .services.stock_ledger_service import verify_product_ledger
from .services.tenant_service import TenantContext


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("Database tables created.")


@click.group('companies')
def companies_group():
    """Company (tenant) management."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    companies = db.session.query(Company).order_by(Company.id.asc()).all()
    if not companies:
        click.echo("No companies found.")
        return
    for company in companies:
        status = "active" if company.is_active else "inactive"
        click.echo(f"{company.id}\t{company.code or '-'}\t{company.name}\t{status}")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', default=None, help='Short unique code')
@with_appcontext
def create_company(name, code):
    name = name.strip()
    if not name:
        raise click.ClickException("Company name is required")
    if code and db.session.query(Company).filter_by(code=code).first():
        raise click.ClickException(f"Company code {code} already exists")

    company = Company(name=name, code=code or None, is_active=True)
    db.session.add(company)
    db.session.commit()
    click.echo(f"Created company {company.id}: {company.name}")


@click.group('stock')
def stock_group():
    """Stock ledger inspection."""


@stock_group.command('verify')
@click.option('--company-id', type=int, required=True, help='Company to check')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_stock(company_id, product_id):
    """
    Replay every product's movements and compare with stock_qty.

    Exits with status 1 when any product fails.
    """
    tenant = TenantContext(company_id=company_id, user_id=0)

    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [
            row.id
            for row in db.session.query(Product.id)
            .filter(Product.company_id == company_id)
            .order_by(Product.id.asc())
            .all()
        ]

    failures = 0
    for pid in product_ids:
        report = verify_product_ledger(tenant, pid)
        if report["ok"]:
            click.echo(f"PASS {report['sku']}: {report['stockQty']} ({report['movementCount']} movements)")
        else:
            failures += 1
            click.echo(f"FAIL {report['sku']}: stock={report['stockQty']} replayed={report['replayedQty']}")
            for issue in report["issues"]:
                click.echo(f"  - {issue}")

    click.echo(f"{len(product_ids) - failures} passed, {failures} failed")
    if failures:
        raise SystemExit(1)


@click.group('outbox')
def outbox_group():
    """Post-commit follow-up events."""


@outbox_group.command('dispatch')
@click.option('--pending-only', is_flag=True, help='Skip events that already failed')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def dispatch_outbox(pending_only, limit):
    result = outbox_service.dispatch_pending(include_failed=not pending_only, limit=limit)
    click.echo(f"Dispatched: {result['done']} done, {result['failed']} failed")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(outbox_group)
