"""Shared utility functions for SpeechCraft."""

import math
from datetime import UTC, datetime
from urllib.parse import urlparse


def is_valid_url(value: str) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``Math.round`` semantics)."""
    return math.floor(value + 0.5)


def count_words(text: str | None) -> int:
    return len(text.split()) if text else 0


def utc_now() -> datetime:
    return datetime.now(UTC)


def iso_timestamp() -> str:
    """Current UTC time as an ISO 8601 string with a ``Z`` suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")
