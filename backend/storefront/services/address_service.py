# Overview: Read access to the address collaborator.

from __future__ import annotations

from ..extensions import db
from ..models import Address


def get_address(address_id: int, customer_id: int, *, session=None) -> Address | None:
    """Return the address only when it belongs to the customer."""
    session = session or db.session
    return session.query(Address).filter_by(id=address_id, customer_id=customer_id).first()
