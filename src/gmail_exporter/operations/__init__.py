"""Export, import and cleanup batch operations."""

from .cleaner import Cleaner
from .exporter import Exporter
from .importer import Importer
from .manifest import MANIFEST_FILENAME, load_manifest, save_manifest, scan_exports_directory

__all__ = [
    "Cleaner",
    "Exporter",
    "Importer",
    "MANIFEST_FILENAME",
    "load_manifest",
    "save_manifest",
    "scan_exports_directory",
]
