"""Shared utilities used across the analysis pipeline."""

import re

_WHITESPACE = re.compile(r"\s+")


def format_time(seconds: float) -> str:
    """Format a second offset as MM:SS.

    Examples:
        >>> format_time(75.4)
        '01:15'
        >>> format_time(3725)
        '62:05'
    """
    total = max(int(seconds), 0)
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_text(value: str) -> str:
    """Collapse runs of whitespace and strip the ends."""
    return _WHITESPACE.sub(" ", value).strip()


def truncate_chars(value: str, limit: int) -> str:
    """Cut a string to at most ``limit`` characters."""
    if len(value) <= limit:
        return value
    return value[:limit]
