"""Audit log retention, archival and cleanup."""

__version__ = "1.0.0"
