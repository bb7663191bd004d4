"""Helpers for converting Gmail message resources and raw RFC 822 bytes."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from email.parser import BytesHeaderParser
from email.utils import parsedate_to_datetime
from typing import Any

from gmail_exporter.models.manifest import ProcessedItemRecord


def decode_raw(data: str) -> bytes:
    """Decode Gmail's unpadded base64url ``raw`` field."""

    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def encode_raw(data: bytes) -> str:
    """Encode RFC 822 bytes the way Gmail expects in ``raw`` (base64url, no padding)."""

    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first for now.
            result.setdefault(name.lower(), value)
    return result


def _raw_header_map(raw: bytes) -> dict[str, str]:
    parsed = BytesHeaderParser().parsebytes(raw)
    result: dict[str, str] = {}
    for name, value in parsed.items():
        result.setdefault(name.lower(), str(value))
    return result


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None


def first_label(message: dict[str, Any]) -> str | None:
    """Return the first label id Gmail reports for a message, if any."""

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        return None
    for label in label_ids:
        if isinstance(label, str) and label:
            return label
    return None


def message_to_record(message: dict[str, Any], size: int, raw: bytes | None = None) -> ProcessedItemRecord:
    """Build a manifest record for an exported message.

    Headers come from the ``payload`` of a ``full`` message when present and
    from the raw RFC 822 bytes otherwise.

    Args:
        message: Gmail API message dict (``full`` or ``raw`` format).
        size: Number of bytes written to disk for the message.
        raw: Decoded raw message, used when the resource has no payload headers.
    """

    hm = _header_map(message)
    if not hm and raw is not None:
        hm = _raw_header_map(raw)

    return ProcessedItemRecord(
        id=str(message.get("id") or ""),
        size=size,
        subject=hm.get("subject"),
        from_=hm.get("from"),
        date=_parse_date(hm.get("date")),
    )


def internal_date(message: dict[str, Any]) -> datetime | None:
    """Gmail's ``internalDate`` (epoch milliseconds) as an aware UTC datetime."""

    value = message.get("internalDate")
    try:
        ms = int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
