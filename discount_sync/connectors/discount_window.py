"""Discount window calculation for CresceVendas batches."""

from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from discount_sync.config import settings
from discount_sync.connectors.base import DiscountWindow

DEFAULT_START = time(6, 0)
END_OF_DAY = time(23, 59)


def compute_discount_window(now: Optional[datetime] = None, timezone: Optional[str] = None) -> DiscountWindow:
    """
    Returns the start/end of today's discount batch in store-local time.

    Before 07:00 the batch starts at 06:00. Later in the day it starts five
    minutes from now shifted back three hours, rolling to the next full hour
    when the minute is 55 or more. CresceVendas rejects windows that do not
    follow this shape, so the three-hour shift is kept as is.
    The window always ends at 23:59 on the same local day.

    Naive ``now`` values are read as local wall-clock time.
    """
    tz = ZoneInfo(timezone or settings.sync_timezone)
    if now is None:
        local_now = datetime.now(tz)
    elif now.tzinfo is None:
        local_now = now.replace(tzinfo=tz)
    else:
        local_now = now.astimezone(tz)

    hour, minute = DEFAULT_START.hour, DEFAULT_START.minute
    if local_now.hour > 6:
        hour = local_now.hour - 3
        if local_now.minute >= 55:
            hour += 1
            minute = 0
        else:
            minute = local_now.minute + 5

    day = local_now.date()
    return DiscountWindow(
        start=datetime.combine(day, time(hour, minute), tzinfo=tz),
        end=datetime.combine(day, END_OF_DAY, tzinfo=tz),
        computed_at=local_now,
    )
