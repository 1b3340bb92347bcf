# identifiers.py
import re
from datetime import datetime, timezone
from typing import Optional, Union

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_ID_RE = re.compile(r"[+-]?[0-9]+")


def parse_id(value: str) -> Optional[int]:
    """Parse a base-10 int64 identifier, or return None if ``value`` is not one.

    Only plain digits with an optional sign are accepted; ``int()`` would also
    take underscores and surrounding whitespace, which never appear in IDs.
    """
    if not isinstance(value, str) or not _ID_RE.fullmatch(value):
        return None
    number = int(value)
    if number < INT64_MIN or number > INT64_MAX:
        return None
    return number


def normalize_handle(value: str) -> str:
    """Strip a single leading '@' from a handle."""
    return value[1:] if value.startswith("@") else value


def clamp_limit(value: Optional[int], default: int, maximum: int) -> int:
    if not value or value <= 0:
        return default
    return min(value, maximum)


def display_name(first_name: Optional[str], last_name: Optional[str] = None) -> str:
    name = first_name or ""
    if last_name:
        name = f"{name} {last_name}" if name else last_name
    return name


def format_date(value: Union[datetime, int, float, None]) -> str:
    """RFC 3339 timestamp for a unix time or datetime (naive values are UTC)."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    else:
        moment = datetime.fromtimestamp(value, tz=timezone.utc)
    return moment.isoformat(timespec="seconds").replace("+00:00", "Z")
