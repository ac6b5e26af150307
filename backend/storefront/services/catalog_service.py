# Overview: Read access to the catalog collaborator (products and option values).

from __future__ import annotations

from ..extensions import db
from ..models import Product, OptionValue, OptionType
from .concurrency import lock_for_update


def get_product(product_id: int, *, lock: bool = False, session=None) -> Product | None:
    session = session or db.session
    query = session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_option_value(option_value_id: int, *, lock: bool = False, session=None) -> OptionValue | None:
    session = session or db.session
    query = session.query(OptionValue).filter_by(id=option_value_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def option_type_name(option: OptionValue, *, session=None) -> str:
    session = session or db.session
    option_type = session.get(OptionType, option.option_type_id)
    return option_type.name if option_type else ""


def unit_price_cents(product: Product, options: list[OptionValue]) -> int:
    """Base price plus every selected option's increment."""
    return product.price_cents + sum(opt.price_cents for opt in options)
