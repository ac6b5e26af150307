# Overview: Transaction boundary and row locking shared by the order workflow.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Lock timeouts, deadlocks and optimistic version conflicts. These abort the
# unit of work; the order workflow never retries them itself.
CONCURRENCY_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the unit of work takes the
    database write lock up front there instead (BEGIN IMMEDIATE).
    """
    return query.with_for_update()


def _begin_immediate_if_sqlite(session) -> None:
    if db.engine.dialect.name != "sqlite":
        return
    raw = session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def unit_of_work():
    """
    One atomic read-check-write boundary around db.session.

    Everything done with the yielded session is committed together when the
    block exits normally, and rolled back together when it raises. Callers
    pass the session into the inventory ledger and order/payment stores.
    """
    session = db.session
    _begin_immediate_if_sqlite(session)
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
