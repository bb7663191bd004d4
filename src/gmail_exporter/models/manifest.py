"""Manifest entry model.

An export writes one record per successfully exported message. Cleanup later
reads the same records to decide which messages to archive or delete, so the
serialized field names are part of the on-disk format.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessedItemRecord(BaseModel):
    """A message that was exported successfully."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Gmail message ID")
    size: int = Field(default=0, description="Bytes written for this message")
    processed: datetime = Field(default_factory=_utcnow, description="When the message was exported")

    subject: str | None = Field(default=None, description="Subject header")
    from_: str | None = Field(default=None, alias="from", description="From header")
    date: datetime | None = Field(default=None, description="Parsed Date header")
