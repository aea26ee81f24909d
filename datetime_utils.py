from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


UTC = timezone.utc
CHECKLIST_DAY_START_HOUR = 3


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def epoch_ms(dt: Optional[datetime] = None) -> int:
    """Milliseconds since the epoch for ``dt`` (defaults to now)."""

    value = ensure_utc(dt) if dt is not None else utc_now()
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _normalize_fraction(s: str) -> str:
    """Pad or trim fractional seconds to 6 digits."""

    digits = s[:6]
    if len(digits) < 6:
        digits = digits + "0" * (6 - len(digits))
    return digits


def parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """Parse a RFC3339 string and return a timezone-aware UTC datetime."""

    if not s:
        return None

    value = s.strip()
    if not value:
        return None

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    if "." in value:
        head, tail = value.split(".", 1)
        tz_sign = "+"
        tz_suffix = "00:00"
        if "+" in tail:
            frac, tz_suffix = tail.split("+", 1)
            tz_sign = "+"
        elif "-" in tail:
            frac, tz_suffix = tail.split("-", 1)
            tz_sign = "-"
        else:
            frac = tail
        frac = _normalize_fraction(frac)
        value = f"{head}.{frac}{tz_sign}{tz_suffix}"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC."""

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def checklist_date_key(moment: Optional[datetime] = None) -> str:
    """Return the ``YYYY-MM-DD`` checklist day for ``moment``.

    A checklist day runs from 03:00 to 03:00 local time, so a toggle at
    01:30 still belongs to the previous day.
    """

    value = moment or datetime.now()
    if value.tzinfo is not None:
        value = value.astimezone()
    shifted = value - timedelta(hours=CHECKLIST_DAY_START_HOUR)
    return shifted.date().isoformat()


def normalize_date_key(value: Optional[str]) -> Optional[str]:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp and return the day key."""

    if not value:
        return None
    text = str(value).strip()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    parsed = parse_rfc3339(text)
    if parsed is None:
        return None
    return checklist_date_key(parsed)


__all__ = [
    "UTC",
    "checklist_date_key",
    "ensure_utc",
    "epoch_ms",
    "from_epoch_ms",
    "normalize_date_key",
    "parse_rfc3339",
    "to_rfc3339_utc",
    "utc_now",
]
