"""
Time expression parsing for the filter pane.

Accepts two grammars and always yields a timezone-aware UTC instant:

- Relative: ``15m``, ``-15m``, ``2h``, ``-1d``, ``30s``. Always "now minus
  duration"; a leading sign is optional because log history only looks back.
- Absolute: RFC 3339 with an offset (``2025-12-11T10:00:00Z``) or a plain
  date-time without one (``2025-12-11 10:00:00``), which is read as local time.

``now`` is always passed in so callers and tests control the clock.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import ParseError

RELATIVE_RE = re.compile(r"^[+-]?(?P<amount>\d+)(?P<unit>[smhd])$")

UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}

_NAIVE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d",
)


def parse_time_expression(text: str, now: datetime) -> datetime:
    """Turn *text* into an absolute UTC instant relative to *now*.

    Raises:
        ParseError: if *text* matches neither the relative nor absolute grammar.
    """
    cleaned = text.strip()
    match = RELATIVE_RE.match(cleaned)
    if match:
        seconds = int(match.group("amount")) * UNIT_SECONDS[match.group("unit")]
        try:
            return _as_utc(now) - timedelta(seconds=seconds)
        except (OverflowError, ValueError) as exc:
            raise ParseError(text, message=f"Time '{text}' is out of range.") from exc

    try:
        parsed = _parse_absolute(cleaned)
    except (OverflowError, ValueError) as exc:
        raise ParseError(text, message=f"Time '{text}' is out of range.") from exc
    if parsed is None:
        raise ParseError(text)
    return parsed


def resolve_optional(text: str, now: datetime) -> Optional[datetime]:
    """Like :func:`parse_time_expression` but empty text means "unset"."""
    if not text.strip():
        return None
    return parse_time_expression(text, now)


def format_instant(value: datetime) -> str:
    return _as_utc(value).isoformat().replace("+00:00", "Z")


def _parse_absolute(text: str) -> Optional[datetime]:
    if not text or not text[0].isdigit():
        return None

    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        parsed = None

    if parsed is None:
        for fmt in _NAIVE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None

    if parsed.tzinfo is None:
        # astimezone() on a naive value assumes the machine's local zone
        parsed = parsed.astimezone()
    return parsed.astimezone(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)
