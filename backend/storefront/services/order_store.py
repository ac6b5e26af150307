# Overview: Durable order records (snapshots), lookups, listing and admin statistics.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderLine, OrderLineOption
from ..models.orders import ORDER_STATUS_PENDING, VALID_ORDER_STATUSES
from ..time_utils import utcnow, cents_to_amount
from .concurrency import lock_for_update


DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

SORTABLE_FIELDS = {
    "placed_at": Order.placed_at,
    "total_amount": Order.total_amount_cents,
    "status": Order.status,
    "created_at": Order.created_at,
}


@dataclass(frozen=True)
class OptionSnapshot:
    option_value_id: int
    option_type_name: str
    value: str
    price_cents: int


@dataclass(frozen=True)
class LineSnapshot:
    product_id: int
    product_name: str
    image: str
    unit_price_cents: int
    quantity: int
    options: tuple[OptionSnapshot, ...] = field(default_factory=tuple)

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class OrderFilter:
    customer_id: int | None = None
    status: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    min_amount_cents: int | None = None
    max_amount_cents: int | None = None
    search: str | None = None


def create_order(
    *,
    customer_id: int,
    address: str,
    lines: list[LineSnapshot],
    total_amount_cents: int,
    session=None,
) -> Order:
    """Persist a pending order with its line snapshots. Flushes, no commit."""
    session = session or db.session
    order = Order(
        customer_id=customer_id,
        placed_at=utcnow(),
        status=ORDER_STATUS_PENDING,
        total_amount_cents=total_amount_cents,
        address=address,
    )
    for position, snap in enumerate(lines, start=1):
        line = OrderLine(
            position=position,
            product_id=snap.product_id,
            product_name=snap.product_name,
            image=snap.image,
            unit_price_cents=snap.unit_price_cents,
            quantity=snap.quantity,
        )
        for opt in snap.options:
            line.options.append(OrderLineOption(
                option_value_id=opt.option_value_id,
                option_type_name=opt.option_type_name,
                value=opt.value,
                price_cents=opt.price_cents,
            ))
        order.lines.append(line)

    session.add(order)
    session.flush()
    return order


def get_order(order_id: int, *, customer_id: int | None = None, lock: bool = False, session=None) -> Order | None:
    """Load an order; when customer_id is given, only that customer's order."""
    session = session or db.session
    query = session.query(Order).filter(Order.id == order_id)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def set_status(order: Order, status: str, *, session=None) -> Order:
    session = session or db.session
    if status not in VALID_ORDER_STATUSES:
        raise ValueError(f"invalid order status: {status}")
    order.status = status
    session.flush()
    return order


def _filtered_query(flt: OrderFilter, session):
    query = session.query(Order)
    if flt.customer_id is not None:
        query = query.filter(Order.customer_id == flt.customer_id)
    if flt.status:
        query = query.filter(Order.status == flt.status)
    if flt.start is not None:
        query = query.filter(Order.placed_at >= flt.start)
    if flt.end is not None:
        query = query.filter(Order.placed_at <= flt.end)
    if flt.min_amount_cents is not None:
        query = query.filter(Order.total_amount_cents >= flt.min_amount_cents)
    if flt.max_amount_cents is not None:
        query = query.filter(Order.total_amount_cents <= flt.max_amount_cents)
    if flt.search:
        query = query.filter(Order.address.ilike(f"%{flt.search}%"))
    return query


def paginate(page: int, limit: int, total: int) -> dict:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def list_orders(
    flt: OrderFilter,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    sort_by: str = "placed_at",
    sort_order: str = "desc",
    session=None,
) -> tuple[list[Order], dict]:
    session = session or db.session
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    column = SORTABLE_FIELDS.get(sort_by, Order.placed_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()

    query = _filtered_query(flt, session)
    total = query.order_by(None).count()
    orders = query.order_by(ordering, Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return orders, paginate(page, limit, total)


def order_stats(flt: OrderFilter, *, session=None) -> dict:
    """Revenue, average order value and per-status counts over the filter."""
    session = session or db.session
    base = _filtered_query(flt, session).order_by(None)

    totals = base.with_entities(
        func.coalesce(func.sum(Order.total_amount_cents), 0),
        func.count(Order.id),
    ).one()
    revenue_cents = int(totals[0] or 0)
    count = int(totals[1] or 0)

    breakdown = {status: 0 for status in VALID_ORDER_STATUSES}
    for status, n in base.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all():
        breakdown[status] = int(n)

    # Half-up rounding to whole cents
    avg_cents = (revenue_cents + count // 2) // count if count else 0

    return {
        "total_revenue_cents": revenue_cents,
        "total_revenue": cents_to_amount(revenue_cents),
        "avg_order_value_cents": avg_cents,
        "avg_order_value": cents_to_amount(avg_cents),
        "total_orders": count,
        "status_breakdown": breakdown,
    }
