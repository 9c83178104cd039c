import re
from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo

# "%-d" style directives (no zero padding) are a glibc extension; expand them
# here so formats behave the same on every platform.
_UNPADDED = re.compile(r"%-([mdHIMS])")


def to_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached (SQLite drops tzinfo)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def _unpadded(local: datetime, directive: str) -> str:
    if directive == "I":
        return str(local.hour % 12 or 12)
    value = {
        "m": local.month,
        "d": local.day,
        "H": local.hour,
        "M": local.minute,
        "S": local.second,
    }[directive]
    return str(value)


def format_local(dt: datetime, zone: ZoneInfo, fmt: str) -> str:
    """Render a UTC timestamp in the given display zone.

    Accepts ``%-m``, ``%-d``, ``%-H``, ``%-I``, ``%-M`` and ``%-S`` for
    unpadded fields in addition to the usual strftime directives.
    """
    local = to_utc_aware(dt).astimezone(zone)
    expanded = _UNPADDED.sub(lambda m: _unpadded(local, m.group(1)), fmt)
    return local.strftime(expanded)
