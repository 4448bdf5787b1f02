import uuid
from datetime import datetime, timezone


def new_uuid() -> str:
    return str(uuid.uuid4())


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def clean(value: str | None) -> str | None:
    """Strip surrounding whitespace, mapping blank strings to ``None``."""
    if value is None:
        return None
    value = value.strip()
    return value or None
