# Overview: UTC time helpers shared by models, sessions and order numbering.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


ORDER_STAMP_FORMAT = "%Y%m%d%H%M%S"


def utcnow() -> datetime:
    """Server-side 'now' in UTC. Stored naive; every column is UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def order_stamp(moment: Optional[datetime] = None) -> str:
    """yyyyMMddHHmmss in UTC, the timestamp part of an order number."""
    return (moment or utcnow()).strftime(ORDER_STAMP_FORMAT)


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    return expires_at < (now or utcnow())


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime into a UTC-naive datetime.

    Accepts:
    - "2027-03-31" (license validity dates) -> midnight UTC
    - "2027-03-31T10:00" (naive, read as UTC)
    - "...Z" or "...+05:30" (converted to UTC)

    None / "" -> None. Raises ValueError on anything else.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if len(s) == 10:
        d = date.fromisoformat(s)
        return datetime(d.year, d.month, d.day)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render as ISO-8601 with a trailing 'Z'; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
