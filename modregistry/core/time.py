# modregistry/core/time.py
from __future__ import annotations
from datetime import datetime, timezone

__all__ = ["utcNow", "nowIso", "calverDate"]



def utcNow() -> datetime:
    return datetime.now(timezone.utc)



def nowIso(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2025-01-31T12:00:00.000Z."""
    moment = (now or utcNow()).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")



def calverDate(moment: datetime) -> str:
    """YYYY.MM.DD for the UTC calendar day of `moment`."""
    moment = moment.astimezone(timezone.utc) if moment.tzinfo else moment
    return f"{moment.year:04d}.{moment.month:02d}.{moment.day:02d}"
