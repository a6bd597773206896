"""
ID generation utilities for Glimpse.

Identifiers sort by creation: a millisecond timestamp and a process-wide
counter come first, a random suffix keeps ids from separate processes apart.
"""

from __future__ import annotations

import secrets
import string
import threading
import time


_ALPHABET = string.ascii_lowercase + string.digits


# ============================================================================
# Thread-Safe Counter
# ============================================================================


class _ThreadSafeCounter:
    """Thread-safe incrementing counter."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        """Get the next counter value."""
        with self._lock:
            self._value += 1
            return self._value


_counter = _ThreadSafeCounter()


# ============================================================================
# Clock
# ============================================================================


def current_millis() -> int:
    """Wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


# ============================================================================
# ID Generation Functions
# ============================================================================


def generate_id(prefix: str, suffix_length: int = 9) -> str:
    """Generate a unique, creation-sortable identifier.

    Format: {prefix}_{millis:013d}_{counter:06d}_{random}

    Args:
        prefix: Prefix for the ID (must not contain underscores)
        suffix_length: Length of the random base36 suffix

    Returns:
        Unique string identifier

    Example:
        >>> generate_id("mem")
        "mem_1704067200123_000001_k3j9x2a7q"
    """
    if not prefix or "_" in prefix:
        raise ValueError(f"Invalid ID prefix: {prefix!r}")

    millis = current_millis()
    count = _counter.next() % 1_000_000
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}_{millis:013d}_{count:06d}_{suffix}"


def generate_record_id() -> str:
    """Generate an ID for a memory record."""
    return generate_id("mem")


def generate_store_id() -> str:
    """Generate an ID for a memory store."""
    return generate_id("db")


# ============================================================================
# ID Parsing
# ============================================================================


def parse_id(value: str) -> tuple[str, int, int]:
    """Parse an ID into its components.

    Args:
        value: The ID to parse

    Returns:
        Tuple of (prefix, timestamp_millis, counter)

    Raises:
        ValueError: If ID format is invalid
    """
    parts = value.split("_")
    if len(parts) != 4 or not parts[0]:
        raise ValueError(f"Invalid ID format: {value}")

    prefix, ts_str, count_str, _ = parts
    return prefix, int(ts_str), int(count_str)


def is_valid_id(value: str) -> bool:
    """Check if a string is a valid Glimpse ID."""
    try:
        parse_id(value)
        return True
    except (ValueError, TypeError, AttributeError):
        return False
