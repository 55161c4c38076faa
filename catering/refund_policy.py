"""
Time-based refund rate for buyer self-service cancellation.

Distances are measured in whole calendar days between midnight of the
delivery date and midnight of "today", both taken in the marketplace's
local timezone.
"""

import math
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Optional, Union
from zoneinfo import ZoneInfo

DEFAULT_ORDER_TIMEZONE = "Asia/Seoul"

FULL_REFUND = Decimal("1")
NO_REFUND = Decimal("0")

# (minimum days before delivery, rate), checked in order
REFUND_SCHEDULE = (
    (3, Decimal("1")),
    (2, Decimal("0.7")),
    (1, Decimal("0.5")),
)


def local_date(moment: Union[date, datetime], tz: Optional[tzinfo] = None) -> date:
    """Calendar date of ``moment`` in ``tz`` (naive datetimes are taken as-is)."""
    if isinstance(moment, datetime):
        if tz is not None and moment.tzinfo is not None:
            moment = moment.astimezone(tz)
        return moment.date()
    return moment


def days_until_delivery(
    delivery_date: date,
    now: Union[date, datetime],
    tz: Optional[tzinfo] = None,
) -> int:
    return (delivery_date - local_date(now, tz)).days


def refund_rate(
    delivery_date: date,
    now: Union[date, datetime],
    tz: Optional[tzinfo] = None,
) -> Decimal:
    """
    Refund rate for a cancellation made at ``now``.

    - 3 or more days before delivery: 100%
    - 2 days: 70%
    - 1 day: 50%
    - the delivery day itself or any time after: 0%

    Args:
        delivery_date: Scheduled delivery date
        now: Current instant or date
        tz: Timezone used to find "today" for aware datetimes;
            defaults to the marketplace timezone

    Returns:
        The rate as a Decimal in {1, 0.7, 0.5, 0}
    """
    if tz is None:
        tz = ZoneInfo(DEFAULT_ORDER_TIMEZONE)
    days = days_until_delivery(delivery_date, now, tz)
    for minimum_days, rate in REFUND_SCHEDULE:
        if days >= minimum_days:
            return rate
    return NO_REFUND


def refund_amount(target: int, rate: Decimal) -> int:
    """Refund for ``target`` won at ``rate``, truncated to whole won."""
    if target < 0:
        raise ValueError("Refund target must not be negative")
    return int(math.floor(Decimal(target) * rate))
