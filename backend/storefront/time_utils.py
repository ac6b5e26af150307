# Overview: Timestamp and money rendering shared by models, ledgers and notifications.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC; every DateTime column in the order schema is stored this way."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as "2026-10-19T08:30:00Z" (naive means UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="seconds") + "Z"


def cents_to_amount(cents: Optional[int]) -> Optional[str]:
    """Render integer cents as a fixed two-decimal string ("35.98")."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    return f"{sign}{cents // 100}.{cents % 100:02d}"
