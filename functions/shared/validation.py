"""
Input validation helpers for the billing endpoints.
"""

import random
import re
from datetime import datetime, timezone
from typing import Optional

# Accepted date shape: 2023-02-15T00:00:00Z (fractional seconds allowed)
ISO_UTC_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$")

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_date(value) -> bool:
    """Return True when value is an ISO-8601 UTC timestamp that parses."""
    if not isinstance(value, str) or not ISO_UTC_REGEX.match(value):
        return False
    try:
        parse_iso_timestamp(value)
    except ValueError:
        return False
    return True


def parse_iso_timestamp(value: str) -> int:
    """
    Convert an ISO-8601 UTC string to epoch seconds.

    Raises:
        ValueError: value is not a parseable timestamp
    """
    # fromisoformat() only accepts the trailing "Z" from 3.11 on
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Trim and lowercase an email address; None passes through."""
    if email is None:
        return None
    return email.strip().lower()


def is_valid_email(email) -> bool:
    return isinstance(email, str) and bool(EMAIL_REGEX.match(email.strip()))


def random_timestamps(start: str, end: str, count: int, rng: Optional[random.Random] = None) -> list[int]:
    """
    Return ``count`` sorted random epoch-second instants within [start, end].

    Used to seed invoice fixtures spread across a settlement window.
    """
    start_ts = parse_iso_timestamp(start)
    end_ts = parse_iso_timestamp(end)
    if end_ts < start_ts:
        raise ValueError("end must not be before start")

    rng = rng or random.Random()
    return sorted(rng.randint(start_ts, end_ts) for _ in range(count))
