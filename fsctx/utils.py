import secrets
import string
from datetime import datetime, timezone

_SIZE_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB")
_AGO_UNITS = (
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("week", 7 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)
_ALPHANUMERIC = string.ascii_letters + string.digits


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} bytes"
    value = float(num_bytes)
    unit = _SIZE_UNITS[0]
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.2f} {unit}"


def format_ago(seconds: float) -> str:
    seconds = max(0, int(seconds))
    if seconds == 0:
        return "now"
    for name, span in _AGO_UNITS:
        if seconds >= span:
            count = seconds // span
            return f"{count} {name}{'' if count == 1 else 's'} ago"
    return "now"


def random_token(length: int) -> str:
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))
