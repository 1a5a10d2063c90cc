# Overview: Flask CLI command group for catalog bootstrap and inspection.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask catalog <command> [options]
#
# - python -m flask catalog init-db
#   Create all tables (idempotent).
# - python -m flask catalog init-db --drop --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask catalog seed-demo
#   Add a small demo catalog with opening stock booked as PURCHASE events.
# - python -m flask catalog low-stock
#   List active items at or below their reorder level.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CatalogItem
from .services import catalog_service, stock_service
from .services.pricing_service import format_markup


DEMO_CATALOG = [
    {
        "name": "Panadol 500mg",
        "generic_name": "Paracetamol",
        "category": "Analgesics",
        "cost_price_cents": 5,
        "units": [
            {"type": "SINGLE", "base_quantity": 1},
            {"type": "STRIP", "base_quantity": 10},
            {"type": "BOX", "base_quantity": 100},
        ],
        "source_unit_type": "BOX",
        "source_price_cents": 1000,
        "opening_quantity": 500,
        "reorder_level": 50,
    },
    {
        "name": "Amoxil 250mg",
        "generic_name": "Amoxicillin",
        "category": "Antibiotics",
        "cost_price_cents": 12,
        "units": [
            {"type": "SINGLE", "base_quantity": 1},
            {"type": "STRIP", "base_quantity": 8},
        ],
        "source_unit_type": "STRIP",
        "source_price_cents": 200,
        "opening_quantity": 160,
        "reorder_level": 24,
    },
    {
        "name": "Cough Syrup 100ml",
        "generic_name": "Dextromethorphan",
        "category": "Cold & Flu",
        "cost_price_cents": 180,
        "units": [
            {"type": "BOTTLE", "base_quantity": 1},
        ],
        "source_unit_type": "BOTTLE",
        "source_price_cents": 350,
        "opening_quantity": 12,
        "reorder_level": 5,
    },
    {
        "name": "Surgical Gloves",
        "category": "Consumables",
        "cost_price_cents": 20,
        "units": [
            {"type": "PAIR", "base_quantity": 1},
            {"type": "BOX", "base_quantity": 50},
        ],
        "source_unit_type": "PAIR",
        "source_price_cents": 40,
        "opening_quantity": 0,
        "reorder_level": 10,
    },
]


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap and inspection commands."""


@catalog_group.command('init-db')
@click.option('--drop', is_flag=True, help='Drop all tables first (deletes all data)')
@click.option('--yes', is_flag=True, help='Confirm --drop')
@with_appcontext
def init_db(drop, yes):
    """Create all tables."""
    if drop:
        if not yes:
            click.echo("FAIL Refusing to drop tables without --yes")
            raise SystemExit(1)
        db.drop_all()
        click.echo("PASS Dropped all tables")
    db.create_all()
    click.echo("PASS Tables created")


@catalog_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Add the demo catalog. Items that already exist (by name) are skipped,
    so the command can be re-run safely.
    """
    created = 0
    for spec in DEMO_CATALOG:
        if db.session.query(CatalogItem).filter_by(name=spec["name"]).first():
            click.echo(f"SKIP {spec['name']} already exists")
            continue
        item = catalog_service.create_item(performed_by="seed-demo", performed_by_role="admin", **spec)
        created += 1
        prices = ", ".join(f"{u.type}={u.price_cents}" for u in item.units)
        click.echo(f"PASS Created {item.name} (ID: {item.id}, on hand: {item.on_hand_quantity}, prices: {prices})")
    click.echo(f"DONE {created} item(s) created")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active items at or below their reorder level."""
    items = stock_service.low_stock_items()
    if not items:
        click.echo("No items at or below reorder level")
        return

    click.echo(f"\n{'ID':<6} {'Name':<30} {'On hand':>8} {'Reorder':>8} {'Markup':>8}")
    click.echo("-" * 64)
    for item in items:
        base = item.base_unit
        markup = format_markup(item.cost_price_cents or 0, base.price_cents) if base else "N/A"
        flag = " OUT" if item.is_out_of_stock else ""
        click.echo(
            f"{item.id:<6} {item.name[:30]:<30} {item.on_hand_quantity:>8} {item.reorder_level:>8} {markup:>8}{flag}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(catalog_group)
