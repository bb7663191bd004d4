"""Reading and writing the processed-emails manifest.

The manifest is a JSON array of :class:`ProcessedItemRecord`. Export writes it
next to the exported files and cleanup consumes it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from gmail_exporter.exceptions import ManifestError
from gmail_exporter.models import ExportFormat, ProcessedItemRecord
from gmail_exporter.utils import write_private

logger = structlog.get_logger()

MANIFEST_FILENAME = "processed_emails.json"

_records_adapter = TypeAdapter(list[ProcessedItemRecord])
_GMAIL_ID_RE = re.compile(r"^[0-9a-fA-F]{10,20}$")
_EXPORT_EXTENSIONS = frozenset(fmt.extension for fmt in ExportFormat)


def save_manifest(path: Path, records: Iterable[ProcessedItemRecord]) -> None:
    """Persist manifest records as an indented JSON array.

    Raises:
        ManifestError: If the file cannot be written.
    """

    items = list(records)
    data = _records_adapter.dump_json(items, indent=2, by_alias=True, exclude_none=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_private(path, data)
    except OSError as exc:
        raise ManifestError(f"failed to write manifest {path}: {exc}") from exc

    logger.info("manifest_saved", manifest=str(path), count=len(items))


def load_manifest(path: Path) -> list[ProcessedItemRecord]:
    """Load manifest records.

    Raises:
        ManifestError: If the file is missing or is not a valid manifest.
    """

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ManifestError(f"failed to read manifest {path}: {exc}") from exc

    try:
        return _records_adapter.validate_json(data)
    except PydanticValidationError as exc:
        raise ManifestError(f"failed to parse manifest {path}: {exc}") from exc


def is_gmail_message_id(value: str) -> bool:
    """Whether ``value`` looks like a Gmail message id (10-20 hex digits)."""

    return bool(_GMAIL_ID_RE.match(value))


def scan_exports_directory(input_dir: Path) -> list[ProcessedItemRecord]:
    """Rebuild manifest records from the filenames of an exports directory.

    Files are expected to be named ``<message-id>.<format>``; anything else is
    skipped. Records are sorted by id.

    Raises:
        ManifestError: If ``input_dir`` is not a directory.
    """

    if not input_dir.is_dir():
        raise ManifestError(f"exports directory does not exist: {input_dir}")

    records: dict[str, ProcessedItemRecord] = {}
    for path in sorted(input_dir.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in _EXPORT_EXTENSIONS:
            continue
        message_id = path.stem
        if not is_gmail_message_id(message_id):
            logger.debug("skipping_unrecognized_export", path=str(path))
            continue
        records.setdefault(message_id, ProcessedItemRecord(id=message_id, size=path.stat().st_size))

    return [records[key] for key in sorted(records)]
