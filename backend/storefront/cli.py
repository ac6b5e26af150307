# Overview: Flask CLI command group for bootstrap and inspection.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "storefront:create_app".
# - Use: python -m flask storefront <command> [options]
#
# - python -m flask storefront init-db
#   Create all tables (development; production uses "flask db upgrade").
# - python -m flask storefront seed-demo
#   Idempotently create a demo product with a size option, a customer, an
#   address and a cart ready for checkout.
# - python -m flask storefront stock 1 [--option 3]
#   Show a product's effective stock (optionally with selected options).
# - python -m flask storefront payment-methods
#   List payment methods and whether each is configured.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Address, Customer, OptionType, OptionValue, Product
from .services import cart_service, inventory_service
from .services.inventory_service import InventoryError
from .services.payment_service import get_payment_service


@click.group('storefront')
def storefront_group():
    """Storefront bootstrap and inspection commands."""


@storefront_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("PASS Tables created")


@storefront_group.command('seed-demo')
@click.option('--email', default='demo@storefront.local', help='Demo customer email')
@with_appcontext
def seed_demo(email):
    """
    Seed a checkout-ready demo.

    Creates a "Widget" priced 15.49 with a "Large" size option (+2.50) and a
    customer whose cart holds 2 x Widget (Large), so checkout totals 35.98.
    """
    customer = db.session.query(Customer).filter_by(email=email).first()
    if customer:
        click.echo(f"WARN  Customer '{email}' already exists (ID: {customer.id}), skipping...")
        return

    product = Product(name="Widget", price_cents=1549, stock=10, image="widget.png")
    size = OptionType(name="Size")
    db.session.add_all([product, size])
    db.session.flush()

    large = OptionValue(option_type_id=size.id, value="Large", price_cents=250, stock=5)
    customer = Customer(name="Demo Customer", email=email)
    db.session.add_all([large, customer])
    db.session.flush()

    address = Address(
        customer_id=customer.id,
        street="1 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
    )
    db.session.add(address)
    db.session.flush()

    cart_service.add_item(customer.id, product.id, 2, option_ids=(large.id,))
    db.session.commit()

    click.echo(f"PASS Product: {product.name} (ID: {product.id}), option {large.value} (ID: {large.id})")
    click.echo(f"PASS Customer: {customer.name} (ID: {customer.id}), address ID: {address.id}")
    click.echo("PASS Cart: 2 x Widget (Large)")


@storefront_group.command('stock')
@click.argument('product_id', type=int)
@click.option('--option', 'option_ids', type=int, multiple=True, help='Selected option value id (repeatable)')
@with_appcontext
def show_stock(product_id, option_ids):
    try:
        stock = inventory_service.get_effective_stock(product_id, option_ids)
    except InventoryError as e:
        raise click.ClickException(str(e))

    product = db.session.get(Product, product_id)
    click.echo(f"{product.name} (ID: {product.id}): base stock {product.stock}, effective stock {stock}")


@storefront_group.command('payment-methods')
@with_appcontext
def payment_methods():
    click.echo("\n" + "="*50)
    click.echo(f"{'Method':<12} {'Configured'}")
    click.echo("="*50)
    for details in get_payment_service().method_details():
        configured = "yes" if details["is_configured"] else "no"
        click.echo(f"{details['name']:<12} {configured}")
    click.echo("="*50 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(storefront_group)
