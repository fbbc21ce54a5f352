"""Timezone-aware UTC timestamp utilities.

Audit events and token claims use these helpers instead of datetime.utcnow()
so every serialized timestamp carries a +00:00 offset.
"""

from datetime import datetime, timezone


def now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def isonow() -> str:
    """Return the current UTC time as an ISO 8601 string with +00:00 offset."""
    return now().isoformat()
