# Overview: Flask CLI command groups for tenant bootstrap, billing sweeps and ledger inspection.

# backend/maroc_billing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to maroc_billing (PowerShell: $env:FLASK_APP="maroc_billing").
# - Use: python -m flask <group> <command> [options]
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
#   List all companies.
# - python -m flask companies create --name "Atlas SARL" --code "ATLAS" [--ice 001234567000089]
#   Create a new company (tenant) with its default stock location.
#
# Billing sweeps (safe to run from cron; each run is one transaction per company):
# - python -m flask billing sweep-overdue [--company-id 1] [--now 2026-03-01]
#   Move sent invoices past their due date to overdue.
# - python -m flask billing expire-quotes [--company-id 1] [--now 2026-03-01]
#   Expire quotes awaiting acceptance past their expiry date.
# - python -m flask billing send-reminders [--company-id 1] [--now 2026-03-01]
#   Log reminder emails for quotes whose reminder date has come.
#
# Stock:
# - python -m flask stock verify-ledger --company-id 1 [--product-id 5]
#   Check that every product's stock matches its movement ledger.

import click
from flask import current_app
from flask.cli import with_appcontext

from .engine import BillingEngine
from .extensions import db
from .models import Company, Product, StockLocation


def _company_ids(company_id):
    if company_id is not None:
        return [company_id]
    return [c.id for c in db.session.query(Company).filter_by(is_active=True).order_by(Company.id).all()]


def _run_sweep(label, company_id, now, operation_name):
    total = 0
    failed = False
    for cid in _company_ids(company_id):
        result = getattr(BillingEngine(cid), operation_name)(now=now)
        if not result.ok:
            click.echo(f"FAIL company {cid}: {result.error.message}")
            failed = True
            continue
        total += len(result.value)
        if result.value:
            click.echo(f"company {cid}: {len(result.value)} {label} ({', '.join(str(i) for i in result.value)})")
    click.echo(f"PASS {total} {label}")
    if failed:
        raise click.exceptions.Exit(1)


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = db.session.query(Company).order_by(Company.id).all()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Currency':<9} {'Active':<8} {'Products'}")
    click.echo("="*80)

    for company in companies:
        product_count = db.session.query(Product).filter_by(company_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"
        click.echo(
            f"{company.id:<5} {company.name:<30} {company.code or '-':<12} {company.currency:<9} "
            f"{active_str:<8} {product_count}"
        )

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--ice', default=None, help='Identifiant Commun de l\'Entreprise')
@click.option('--currency', default=None, help='ISO currency (defaults to DEFAULT_CURRENCY)')
@with_appcontext
def create_company_cli(name, code, ice, currency):
    """Create a new company (tenant)."""
    existing = db.session.query(Company).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Company with code '{code}' already exists")
        return

    company = Company(
        name=name,
        code=code,
        ice=ice,
        currency=currency or current_app.config["DEFAULT_CURRENCY"],
        is_active=True,
    )
    db.session.add(company)
    db.session.flush()
    db.session.add(StockLocation(company_id=company.id, name="Dépôt principal", is_default=True))
    db.session.commit()

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")


@click.group('billing')
def billing_group():
    """Scheduled billing sweeps."""


@billing_group.command('sweep-overdue')
@click.option('--company-id', type=int, default=None, help='Limit to one company')
@click.option('--now', default=None, help='Reference time (ISO-8601), defaults to now')
@with_appcontext
def sweep_overdue(company_id, now):
    """Mark sent invoices past their due date as overdue."""
    _run_sweep("invoices marked overdue", company_id, now, "sweep_overdue_invoices")


@billing_group.command('expire-quotes')
@click.option('--company-id', type=int, default=None, help='Limit to one company')
@click.option('--now', default=None, help='Reference time (ISO-8601), defaults to now')
@with_appcontext
def expire_quotes(company_id, now):
    """Expire quotes awaiting acceptance past their expiry date."""
    _run_sweep("quotes expired", company_id, now, "expire_quotes")


@billing_group.command('send-reminders')
@click.option('--company-id', type=int, default=None, help='Limit to one company')
@click.option('--now', default=None, help='Reference time (ISO-8601), defaults to now')
@with_appcontext
def send_reminders(company_id, now):
    """Record reminder emails for quotes that are due one."""
    _run_sweep("quote reminders", company_id, now, "process_quote_reminders")


@click.group('stock')
def stock_group():
    """Stock ledger inspection."""


@stock_group.command('verify-ledger')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_ledger(company_id, product_id):
    """Verify current_stock against the movement ledger."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [
            p.id for p in db.session.query(Product)
            .filter_by(company_id=company_id, manage_stock=True, is_service=False)
            .order_by(Product.id)
            .all()
        ]

    engine = BillingEngine(company_id)
    broken = 0
    for pid in product_ids:
        result = engine.verify_ledger(pid)
        if not result.ok:
            click.echo(f"FAIL product {pid}: {result.error.message}")
            broken += 1
            continue
        report = result.value
        if report["ok"]:
            click.echo(f"PASS product {pid}: stock {report['current_stock']} ({report['movement_count']} movements)")
        else:
            broken += 1
            click.echo(f"FAIL product {pid}:")
            for problem in report["problems"]:
                click.echo(f"  - {problem}")

    if broken:
        raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(companies_group)
    app.cli.add_command(billing_group)
    app.cli.add_command(stock_group)
