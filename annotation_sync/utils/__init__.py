"""Logging and redaction helpers shared across annotation_sync."""
