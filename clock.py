"""Single source of "now" for the application.

Every timestamp that drives switch behaviour is read through `utcnow()` so
tests can freeze or advance time by replacing this function.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching how columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
