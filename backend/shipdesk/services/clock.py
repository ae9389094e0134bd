import time
from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], int]


def now_ms() -> int:
    """Current time as epoch milliseconds, the unit every stored timestamp uses."""
    return int(time.time() * 1000)


def format_datetime(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{moment.month}/{moment.day}/{moment.year}, {hour}:{moment.minute:02d}:{moment.second:02d} {suffix}"


def format_timestamp(value: int | float | None) -> str:
    """Render an epoch-millisecond timestamp as ``M/D/YYYY, h:mm:ss AM`` in UTC."""
    if not value:
        return ""
    return format_datetime(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
