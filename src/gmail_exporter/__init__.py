"""Gmail Exporter - bulk export, import and cleanup of Gmail messages.

This package provides tools for exporting messages that match a Gmail
search filter to local files, importing those files into another mailbox,
and archiving or deleting the exported messages afterwards.
"""

__version__ = "0.1.0"
__author__ = "Octasoft Ltd"

from gmail_exporter.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
