"""
Submission validity window.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600


def resolve_receipt_valid_days(configured: Any, default: int) -> int:
    """Return *configured* when it is a positive integer, else *default*."""
    if configured is None:
        return default
    if isinstance(configured, bool) or not isinstance(configured, int) or configured <= 0:
        logger.warning(
            "Invalid receipt_valid_days value: %r. Using default of %d days.", configured, default
        )
        return default
    return configured


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_within_window(receipt_date: datetime, valid_days: int, now: datetime | None = None) -> bool:
    """True when the receipt is no older than *valid_days* (fractional days)."""
    now = _as_utc(now or datetime.now(timezone.utc))
    age_days = (now - _as_utc(receipt_date)).total_seconds() / SECONDS_PER_DAY
    return age_days <= valid_days
