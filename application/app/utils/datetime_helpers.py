"""
Utility functions for date and time handling.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current timezone-aware UTC datetime; the default clock for OTP expiry."""
    return datetime.now(timezone.utc)
