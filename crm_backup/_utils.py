import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

logger = logging.getLogger("crm-backup")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp into an aware UTC datetime.

    Accepts datetimes, dates and ISO-8601 strings (a trailing ``Z`` is allowed).
    Naive values are taken to be UTC. Returns None for missing or unparseable
    input so callers can treat it as "no timestamp available".
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
