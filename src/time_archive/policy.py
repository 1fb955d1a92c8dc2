import calendar
from datetime import datetime, timedelta
from typing import Protocol

from .constants import UNIT_HOUR, UNIT_MINUTE, UNIT_MONTH, UNIT_WEEK, UNIT_YEAR
from .models import ArchiveRule


class Clock(Protocol):
    def now(self) -> datetime:
        ...


def subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar month subtraction, clamping to the last day of the target month."""
    total = moment.year * 12 + (moment.month - 1) - months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def compute_cutoff(clock: Clock, time_unit: int, time_amount: int) -> datetime:
    now = clock.now()
    amount = int(time_amount)
    if time_unit == UNIT_MINUTE:
        return now - timedelta(minutes=amount)
    if time_unit == UNIT_HOUR:
        return now - timedelta(hours=amount)
    if time_unit == UNIT_WEEK:
        return now - timedelta(weeks=amount)
    if time_unit == UNIT_MONTH:
        return subtract_months(now, amount)
    if time_unit == UNIT_YEAR:
        return subtract_months(now, amount * 12)
    # UNIT_DAY, and anything unrecognised
    return now - timedelta(days=amount)


def rule_cutoff(rule: ArchiveRule, clock: Clock) -> datetime:
    return compute_cutoff(clock, rule.time_unit, rule.time_amount)
