"""Relative time expressions.

Turns ``"20days"``, ``"10 mins"``, ``"1 month 3 days"``, ``"3 hours ago"``,
``"now"`` or an absolute timestamp into a signed number of seconds from the
current instant. Months and years are calendar-aware.

Usage:
    from credrotate.credentials.duration import parse_duration

    parse_duration("20days")            # 1728000
    parse_duration("now")               # 0
    parse_duration(key.created_at)      # negative: the key was created in the past
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from ..exceptions import InvalidDuration

logger = logging.getLogger(__name__)

# unit alias -> (kind, seconds per unit or relativedelta field)
_UNITS = {
    "s": ("seconds", 1),
    "sec": ("seconds", 1),
    "secs": ("seconds", 1),
    "second": ("seconds", 1),
    "seconds": ("seconds", 1),
    "m": ("seconds", 60),
    "min": ("seconds", 60),
    "mins": ("seconds", 60),
    "minute": ("seconds", 60),
    "minutes": ("seconds", 60),
    "h": ("seconds", 3600),
    "hr": ("seconds", 3600),
    "hrs": ("seconds", 3600),
    "hour": ("seconds", 3600),
    "hours": ("seconds", 3600),
    "d": ("seconds", 86400),
    "day": ("seconds", 86400),
    "days": ("seconds", 86400),
    "w": ("seconds", 604800),
    "wk": ("seconds", 604800),
    "wks": ("seconds", 604800),
    "week": ("seconds", 604800),
    "weeks": ("seconds", 604800),
    "mon": ("calendar", "months"),
    "mons": ("calendar", "months"),
    "month": ("calendar", "months"),
    "months": ("calendar", "months"),
    "y": ("calendar", "years"),
    "yr": ("calendar", "years"),
    "yrs": ("calendar", "years"),
    "year": ("calendar", "years"),
    "years": ("calendar", "years"),
}

_TERM = r"[+-]?\s*\d+(?:\.\d+)?\s*[a-z]+"
_EXPRESSION_RE = re.compile(rf"^\s*(?:{_TERM}\s*,?\s*)+(?:ago)?\s*$")
_TERM_RE = re.compile(r"([+-]?)\s*(\d+(?:\.\d+)?)\s*([a-z]+)")

TimeExpression = Union[str, datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _resolve_relative(text: str, now: datetime) -> Optional[datetime]:
    if not _EXPRESSION_RE.match(text):
        return None

    body = text
    negate = False
    if body.endswith("ago"):
        negate = True
        body = body[: -len("ago")]

    seconds = 0.0
    calendar = {"months": 0, "years": 0}
    for sign, quantity, unit in _TERM_RE.findall(body):
        unit_info = _UNITS.get(unit)
        if unit_info is None:
            raise InvalidDuration(f"Unknown time unit '{unit}' in '{text}'")

        value = float(quantity)
        if sign == "-":
            value = -value

        kind, scale = unit_info
        if kind == "seconds":
            seconds += value * scale
        else:
            if not value.is_integer():
                raise InvalidDuration(f"Non-integer {scale} are ambiguous in '{text}'")
            calendar[scale] += int(value)

    if negate:
        seconds = -seconds
        calendar = {k: -v for k, v in calendar.items()}

    try:
        return now + relativedelta(**calendar) + timedelta(seconds=seconds)
    except (OverflowError, ValueError) as e:
        raise InvalidDuration(f"Time expression '{text}' is out of range: {e}") from e


def resolve_timestamp(expression: TimeExpression, now: Optional[datetime] = None) -> datetime:
    """Resolve a time expression to an absolute UTC timestamp.

    Args:
        expression: Relative expression, "now", absolute timestamp string, or datetime
        now: Reference instant (defaults to the current UTC time)

    Returns:
        Timezone-aware UTC datetime

    Raises:
        InvalidDuration: If the expression cannot be resolved
    """
    now = _as_utc(now) if now is not None else utcnow()

    if isinstance(expression, datetime):
        return _as_utc(expression)

    if not isinstance(expression, str) or not expression.strip():
        raise InvalidDuration(f"Empty or non-text time expression: {expression!r}")

    text = expression.strip().lower()
    if text == "now":
        return now

    resolved = _resolve_relative(text, now)
    if resolved is not None:
        return resolved

    # Missing date parts come from the reference day, not the wall clock
    default = now.replace(tzinfo=None, hour=0, minute=0, second=0, microsecond=0)
    try:
        return _as_utc(date_parser.parse(expression.strip(), default=default))
    except (ValueError, OverflowError) as e:
        raise InvalidDuration(f"Cannot resolve time expression '{expression}': {e}") from e


def parse_duration(expression: TimeExpression, now: Optional[datetime] = None) -> int:
    """Resolve an expression against ``now`` and return the offset in seconds.

    The offset is rounded half-up to a whole second. Past timestamps give a
    negative value; deciding whether that is acceptable is left to the caller.

    Args:
        expression: Relative expression, "now", absolute timestamp string, or datetime
        now: Reference instant (defaults to the current UTC time)

    Returns:
        Signed number of seconds between ``now`` and the resolved instant

    Raises:
        InvalidDuration: If the expression cannot be resolved
    """
    now = _as_utc(now) if now is not None else utcnow()
    resolved = resolve_timestamp(expression, now)
    offset = (resolved - now).total_seconds()
    seconds = math.floor(offset + 0.5)
    logger.debug(f"Resolved time expression {expression!r} to {seconds}s")
    return seconds
