from datetime import datetime, timezone
from typing import Any

def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column in this app stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None

def safe_int(value: Any, default: int = 0, lo: int | None = None, hi: int | None = None) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return default
    if lo is not None:
        v = max(lo, v)
    if hi is not None:
        v = min(hi, v)
    return v

def parse_date(value: Any) -> datetime | None:
    """Accept 'YYYY-MM-DD' or a full ISO timestamp; anything else is ignored."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None
