"""Advocate directory: filtered, sorted, paginated advocate listings over DuckDB."""

__version__ = "0.1.0"
