import uuid
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, truncated toward zero; negative if end precedes start."""
    return int((end - start).total_seconds())


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime from the wire to the stored naive-UTC form."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
