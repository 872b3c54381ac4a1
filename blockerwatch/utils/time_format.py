"""Relative age formatting for gravity / filter list updates"""

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def age_seconds(then: datetime, clock: Clock) -> int:
    """Whole seconds between ``then`` and the clock, clamped at zero"""
    now = clock()
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, int((now - then).total_seconds()))


def epoch_age_seconds(epoch_seconds: int, clock: Clock) -> int:
    return age_seconds(datetime.fromtimestamp(epoch_seconds, tz=timezone.utc), clock)


def parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp such as AdGuard's filters_updated_at.

    Returns None when the value is blank or unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # AdGuard emits nanosecond fractions; datetime accepts at most six digits
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        for ch in rest:
            if not ch.isdigit():
                break
            digits += ch
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_age(prefix: str, seconds: int) -> str:
    """Format an age as ``"{prefix}: 2d 3h ago"`` / ``"1h 5m ago"`` / ``"7m ago"`` / ``"just now"``"""
    seconds = max(0, int(seconds))
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    if days > 0:
        return f"{prefix}: {days}d {hours}h ago"
    if hours > 0:
        return f"{prefix}: {hours}h {minutes}m ago"
    if minutes > 0:
        return f"{prefix}: {minutes}m ago"
    return f"{prefix}: just now"


def format_unknown(prefix: str) -> str:
    return f"{prefix}: unknown"
