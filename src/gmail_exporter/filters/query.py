"""Translate filter specifications into Gmail search queries.

Clauses are emitted in a fixed order so the same specification always yields
the same query string. Gmail treats the query as an unordered conjunction, so
the order only matters for readability and tests.
"""

from __future__ import annotations

import re
from datetime import date, timedelta

from gmail_exporter.exceptions import FilterValidationError
from gmail_exporter.models import FilterSpecification, SearchScope

_DEFAULT_SCOPES = frozenset({SearchScope.ALL.value, SearchScope.ALL_MAIL.value})
_VALID_SCOPES = tuple(scope.value for scope in SearchScope)

_SIZE_UNITS: dict[str, int] = {
    "": 1,
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}

_DURATION_UNITS: dict[str, timedelta] = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "m": timedelta(days=30),
    "y": timedelta(days=365),
}

_SIZE_RE = re.compile(r"^(?P<number>[0-9]*\.?[0-9]+)\s*(?P<unit>[A-Z]*)$")


def _gmail_date(value: date) -> str:
    return value.strftime("%Y/%m/%d")


def build_query(spec: FilterSpecification) -> str:
    """Convert a filter specification to a Gmail search query.

    Args:
        spec: Filter criteria. An empty specification yields an empty query.

    Returns:
        Space-joined Gmail query clauses.
    """

    parts: list[str] = []

    if spec.to:
        parts.append(f"to:{spec.to}")
    if spec.from_:
        parts.append(f"from:{spec.from_}")
    if spec.subject:
        if any(ch.isspace() for ch in spec.subject):
            parts.append(f"subject:({spec.subject})")
        else:
            parts.append(f"subject:{spec.subject}")
    if spec.includes_words:
        parts.append(spec.includes_words)
    if spec.excludes_words:
        parts.extend(f"-{word}" for word in spec.excludes_words.split())

    # Gmail only has a ">=" size operator; "-size:N" stands in for "< N".
    if spec.size_greater_than:
        parts.append(f"size:{spec.size_greater_than}")
    if spec.size_less_than:
        parts.append(f"-size:{spec.size_less_than}")

    if spec.date_within:
        days = spec.date_within // timedelta(days=1)
        parts.append(f"newer_than:{days}d")
    if spec.date_after is not None:
        parts.append(f"after:{_gmail_date(spec.date_after)}")
    if spec.date_before is not None:
        parts.append(f"before:{_gmail_date(spec.date_before)}")

    if spec.has_attachment is not None:
        parts.append("has:attachment" if spec.has_attachment else "-has:attachment")
    if spec.exclude_chats:
        parts.append("-in:chats")

    if spec.labels:
        for label in spec.labels.split(","):
            label = label.strip()
            if label:
                parts.append(f"label:{label}")

    if spec.search_scope and spec.search_scope not in _DEFAULT_SCOPES:
        parts.append(f"in:{spec.search_scope}")

    return " ".join(parts)


def validate(spec: FilterSpecification) -> None:
    """Reject contradictory or unsupported filter combinations.

    Raises:
        FilterValidationError: If the specification cannot match anything sensible.
    """

    if spec.size_greater_than and spec.size_less_than and spec.size_greater_than >= spec.size_less_than:
        raise FilterValidationError("size-greater-than must be less than size-less-than")

    if spec.date_after is not None and spec.date_before is not None and spec.date_after > spec.date_before:
        raise FilterValidationError("date-after must be before date-before")

    if spec.search_scope and spec.search_scope not in _VALID_SCOPES:
        raise FilterValidationError(
            f"invalid search scope: {spec.search_scope} (valid: {', '.join(_VALID_SCOPES)})"
        )


def parse_size(value: str) -> int:
    """Parse a size such as ``"5MB"`` into bytes using 1024-based units.

    Raises:
        ValueError: On a missing number or an unknown unit.
    """

    text = value.strip().upper()
    match = _SIZE_RE.match(text)
    if match is None:
        unit = text.lstrip("0123456789. ")
        number = text[: len(text) - len(unit)].strip()
        if not number:
            raise ValueError(f"invalid size format: {value!r}")
        if unit in _SIZE_UNITS:
            raise ValueError(f"invalid number in size: {number}")
        raise ValueError(f"invalid size unit: {unit} (valid: B, KB, MB, GB, TB)")

    unit = match.group("unit")
    if unit not in _SIZE_UNITS:
        raise ValueError(f"invalid size unit: {unit} (valid: B, KB, MB, GB, TB)")

    return int(float(match.group("number")) * _SIZE_UNITS[unit])


def parse_duration(value: str) -> timedelta:
    """Parse a relative window such as ``"30d"`` or ``"2w"``.

    Months count as 30 days and years as 365 days.

    Raises:
        ValueError: On an unknown unit or a non-integer magnitude.
    """

    text = value.strip().lower()
    if len(text) < 2:
        raise ValueError(f"invalid duration format: {value!r}")

    number, unit = text[:-1], text[-1]
    if unit not in _DURATION_UNITS:
        raise ValueError(f"invalid duration unit: {unit} (valid: h, d, w, m, y)")
    if not number.isdigit():
        raise ValueError(f"invalid number in duration: {number}")

    return int(number) * _DURATION_UNITS[unit]


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` date as accepted on the command line."""

    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"invalid date {value!r} (use YYYY-MM-DD)") from exc
