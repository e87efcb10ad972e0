"""
Service status derivation.

Everything here is a pure function of stored dates and an explicit reference
time. Nothing is cached: "now" moves, so callers recompute on every read.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional

FREEZE_DAY_BUDGET = 30

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.utcnow()


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def freeze_day_count(start_date: date, end_date: date) -> int:
    """Inclusive day count: both boundary days are frozen."""
    return (_as_date(end_date) - _as_date(start_date)).days + 1


def remaining_freeze_days(total_used: Optional[int]) -> int:
    return max(0, FREEZE_DAY_BUDGET - (total_used or 0))


def days_remaining(expiry_date: Optional[datetime], now: datetime) -> Optional[int]:
    if expiry_date is None:
        return None
    diff = (expiry_date - now).total_seconds() / SECONDS_PER_DAY
    return max(0, math.ceil(diff))


def is_active(expiry_date: Optional[datetime], now: datetime) -> bool:
    if expiry_date is None:
        return True
    return _as_date(expiry_date) >= _as_date(now)


def actual_membership_status(services: Iterable[Dict[str, Any]], stored_status: Optional[str]) -> str:
    if any(s.get('is_active') for s in services):
        return 'active'
    return stored_status or 'pending'


def service_view(item: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    view = dict(item)
    expiry = item.get('expiry_date')
    view['days_remaining'] = days_remaining(expiry, now)
    view['is_active'] = is_active(expiry, now)
    return view


def renewal_call_time(expiry_date: datetime, lead_days: int = 7, hour: int = 10) -> datetime:
    """Renewal calls go out ``lead_days`` before expiry, at ``hour`` o'clock."""
    call = expiry_date - timedelta(days=lead_days)
    return call.replace(hour=hour, minute=0, second=0, microsecond=0)
