"""Utility functions for sanitization, validation and timestamps."""

from datetime import datetime, timezone

import bleach

from eduplatform.errors import InvalidAmount


def sanitize_text(text: str) -> str:
    """Strip all HTML from user-supplied text (descriptions, prompts, titles)."""
    sanitized = bleach.clean(text or "", tags=[], strip=True)
    return sanitized.strip()


def validate_amount(amount) -> int:
    """Validate that a point amount is a positive integer.

    Args:
        amount: The requested number of points

    Returns:
        The amount, unchanged

    Raises:
        InvalidAmount: If amount is not an int or is not greater than zero
    """
    # bool is an int subclass; True must not pass as 1 point
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be a whole number of points, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be greater than zero, got {amount}")
    return amount


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime read back from a store without offsets."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
