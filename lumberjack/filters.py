"""
Filter shorthand translation.

Operators type a compact notation in the Query field::

    routing_id=1364 task="batch-attendances" ERROR

Each ``identifier=value`` token becomes an equality predicate on a JSON path
(``$.routing_id = 1364``); every other token is kept verbatim as free text.
Text that already starts with ``{`` or ``[`` is a native backend expression and
passes through untouched.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import ParseError
from .models import FieldTerm, FilterSpec, StructuredQuery
from .timeexpr import resolve_optional

TOKEN_RE = re.compile(r'[A-Za-z_][\w.]*="[^"]*"|\S+')
FIELD_TERM_RE = re.compile(
    r'^(?P<path>[A-Za-z_][\w.]*)=(?:"(?P<quoted>[^"]*)"|(?P<bare>[^\s"]+))$'
)
INTEGER_RE = re.compile(r"^-?\d+$")
BOOLEANS = {"true": True, "false": False}
NATIVE_PREFIXES = ("{", "[")


def translate(text: str) -> FilterSpec:
    """Translate shorthand *text* into the pattern half of a :class:`FilterSpec`."""
    stripped = text.strip()
    if not stripped:
        return FilterSpec()
    if stripped.startswith(NATIVE_PREFIXES):
        return FilterSpec(raw_pattern=stripped)

    raw_tokens: list[str] = []
    terms: list[FieldTerm] = []
    for token in TOKEN_RE.findall(stripped):
        term = _field_term(token)
        if term is None:
            raw_tokens.append(token)
        else:
            terms.append(term)
    return FilterSpec(raw_pattern=" ".join(raw_tokens), field_terms=tuple(terms))


def render_shorthand(spec: FilterSpec) -> str:
    """Inverse of :func:`translate` for the pattern half of *spec*."""
    if spec.raw_pattern.startswith(NATIVE_PREFIXES) and not spec.field_terms:
        return spec.raw_pattern
    parts = [term.shorthand() for term in spec.field_terms]
    if spec.raw_pattern:
        parts.append(spec.raw_pattern)
    return " ".join(parts)


def compose_query(spec: FilterSpec) -> StructuredQuery:
    """Combine free text and field predicates into one backend pattern."""
    if not spec.field_terms:
        return StructuredQuery(spec.raw_pattern)
    predicates = " && ".join(term.predicate() for term in spec.field_terms)
    structured = f"{{ {predicates} }}"
    if spec.raw_pattern:
        return StructuredQuery(f"{spec.raw_pattern} && {structured}")
    return StructuredQuery(structured)


def build_filter_spec(start: str, end: str, query: str, now: datetime) -> FilterSpec:
    """Validate the three Filter pane fields and return the resulting spec.

    Raises:
        ParseError: if a time is malformed or the window is inverted.
    """
    spec = translate(query)
    spec = FilterSpec(
        start=start.strip(),
        end=end.strip(),
        raw_pattern=spec.raw_pattern,
        field_terms=spec.field_terms,
    )
    time_window(spec, now)
    return spec


def time_window(
    spec: FilterSpec,
    now: datetime,
    default_lookback: Optional[timedelta] = None,
) -> tuple[Optional[datetime], datetime]:
    """Resolve the time fields of *spec* against *now*.

    An empty end is *now*. An empty start stays ``None`` unless a
    *default_lookback* is given.
    """
    start = resolve_optional(spec.start, now)
    end = resolve_optional(spec.end, now)
    if end is None:
        end = now.astimezone(timezone.utc)
    if start is None and default_lookback is not None:
        start = end - default_lookback
    if start is not None and start > end:
        raise ParseError(
            f"{spec.start} .. {spec.end}",
            kind="inverted-range",
            message=f"Start '{spec.start}' is after end '{spec.end or 'now'}'.",
        )
    return start, end


def _field_term(token: str) -> Optional[FieldTerm]:
    match = FIELD_TERM_RE.match(token)
    if not match:
        return None
    path = match.group("path")
    quoted = match.group("quoted")
    if quoted is not None:
        return FieldTerm(path, quoted, "string")
    bare = match.group("bare")
    if INTEGER_RE.match(bare):
        return FieldTerm(path, int(bare), "number")
    if bare in BOOLEANS:
        return FieldTerm(path, BOOLEANS[bare], "boolean")
    return FieldTerm(path, bare, "string")
