"""
ScanNorm - Format Utilities Module

This module provides shared utility functions for formatting values.
Centralizes formatting logic to avoid code duplication.
"""

from datetime import datetime, timezone


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB")
    """
    if size_bytes <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB"]

    size = float(size_bytes)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    elif size >= 100:
        return f"{int(size)} {units[unit_index]}"
    elif size >= 10:
        return f"{size:.1f} {units[unit_index]}"
    else:
        return f"{size:.2f} {units[unit_index]}"


def iso_timestamp(when: datetime | None = None) -> str:
    """ISO 8601 UTC timestamp with millisecond precision and a ``Z`` suffix.

    Naive datetimes are taken to be UTC.
    """
    if when is None:
        when = datetime.now(timezone.utc)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    else:
        when = when.astimezone(timezone.utc)
    return when.strftime("%Y-%m-%dT%H:%M:%S.") + f"{when.microsecond // 1000:03d}Z"


def download_filename(purpose: str, when: datetime | None = None) -> str:
    """Build a download name like ``scanner-photo-2026-10-19T06-18-00-123Z.jpg``.

    Args:
        purpose: Leading label (e.g. "scanner-photo")
        when: Capture time, defaults to now

    Returns:
        Filename with ':' and '.' in the timestamp replaced by '-'
    """
    stamp = iso_timestamp(when).replace(":", "-").replace(".", "-")
    return f"{purpose}-{stamp}.jpg"


def format_elapsed_ms(seconds: float) -> str:
    """Format a short duration as milliseconds or seconds."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"
