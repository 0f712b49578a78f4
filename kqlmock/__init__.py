"""Local test double for a KQL-compatible log-analytics query service."""

__version__ = "0.1.0"
