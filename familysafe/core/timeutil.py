from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a Supabase timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def today_iso(now: Optional[datetime] = None) -> str:
    """Schedule date key: the UTC calendar date."""
    return (now or utcnow()).date().isoformat()
