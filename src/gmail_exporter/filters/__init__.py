"""Filter parsing and Gmail query construction."""

from .query import build_query, parse_date, parse_duration, parse_size, validate

__all__ = ["build_query", "parse_date", "parse_duration", "parse_size", "validate"]
