"""Request-shape helpers. They raise ValueError; routes turn it into a 400."""
from datetime import date, datetime, time


def parse_iso(value) -> datetime:
    # Expect ISO format like "2026-01-20T18:00:00"
    if not value:
        raise ValueError("missing datetime")
    return datetime.fromisoformat(str(value))


def parse_date(value) -> date:
    if not value:
        raise ValueError("missing date")
    return date.fromisoformat(str(value)[:10])


def parse_hour(value) -> time:
    """Accepts "08:30", "08:30:00" or a bare hour (8)."""
    if value is None or value == "":
        raise ValueError("missing hour")
    if isinstance(value, int) and not isinstance(value, bool):
        return time(hour=value)
    return time.fromisoformat(str(value))


def parse_int(value, name: str, default=None) -> int:
    if value is None:
        if default is None:
            raise ValueError(f"{name} is required")
        return default
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")
