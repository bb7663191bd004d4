"""Custom exceptions for Gmail Exporter."""


class GmailExporterError(Exception):
    """Base exception for all Gmail Exporter errors."""


class GmailAPIError(GmailExporterError):
    """Exception raised for Gmail API related errors."""


class ConfigurationError(GmailExporterError):
    """Exception raised for configuration related errors."""


class AuthenticationError(GmailExporterError):
    """Exception raised for authentication failures."""


class ValidationError(GmailExporterError):
    """Exception raised for invalid operation input (format, action, limits)."""


class FilterValidationError(ValidationError):
    """Exception raised when a filter specification is self-contradictory."""


class ManifestError(GmailExporterError):
    """Exception raised when a processed-emails manifest cannot be read or written."""
