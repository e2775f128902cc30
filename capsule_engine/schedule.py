"""Deterministic release schedule builder with validation."""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Dict, Tuple

from .models import DistributionSchedule, Frequency, PeriodType, ReleaseEvent
from .validation import validate_date, validate_periods


logger = logging.getLogger(__name__)


class ScheduleError(ValueError):
    """Raised when a distribution schedule violates its invariants."""


_DAY_SECONDS = 86_400

_PERIOD_SECONDS: Dict[Frequency, int] = {
    Frequency.DAILY: _DAY_SECONDS,
    Frequency.WEEKLY: 7 * _DAY_SECONDS,
    Frequency.MONTHLY: 30 * _DAY_SECONDS,
    Frequency.ANNUALLY: 365 * _DAY_SECONDS,
}


class ScheduleCalculator:
    """Turns user scheduling choices into a canonical release schedule."""

    def build(
        self,
        period_type: PeriodType,
        frequency: Frequency,
        period_count_raw: str,
        start_date_raw: str,
        now: datetime,
    ) -> DistributionSchedule:
        if not isinstance(period_type, PeriodType):
            raise ScheduleError("Unsupported period type.")
        if not isinstance(frequency, Frequency):
            raise ScheduleError("Unsupported frequency.")

        start_date = validate_date(start_date_raw, now)
        if period_type == PeriodType.IMMEDIATE:
            period_count = 1
        else:
            period_count = validate_periods(period_count_raw)

        schedule = DistributionSchedule(
            period_type=period_type,
            start_date=start_date,
            frequency=frequency,
            period_count=period_count,
        )
        validate_schedule(schedule)
        logger.debug(
            "Built %s schedule: %d period(s) from %s",
            period_type.value,
            period_count,
            start_date.isoformat(),
        )
        return schedule


def validate_schedule(schedule: DistributionSchedule) -> None:
    if not isinstance(schedule.period_type, PeriodType):
        raise ScheduleError("period_type must be a defined enum.")
    if not isinstance(schedule.frequency, Frequency):
        raise ScheduleError("frequency must be a defined enum.")
    if schedule.start_date.tzinfo is None:
        raise ScheduleError("start_date must be timezone-aware.")
    if schedule.period_type == PeriodType.IMMEDIATE and schedule.period_count != 1:
        raise ScheduleError("Immediate schedules release in exactly one period.")
    if schedule.period_type == PeriodType.STAGGERED and schedule.period_count < 2:
        raise ScheduleError("Staggered schedules need at least two periods.")


def release_dates(schedule: DistributionSchedule) -> Tuple[datetime, ...]:
    validate_schedule(schedule)
    return tuple(
        step_forward(schedule.start_date, schedule.frequency, index)
        for index in range(schedule.period_count)
    )


def release_events(schedule: DistributionSchedule) -> Tuple[ReleaseEvent, ...]:
    return tuple(
        ReleaseEvent(sequence=index, release_at=release_at)
        for index, release_at in enumerate(release_dates(schedule), start=1)
    )


def period_size_seconds(frequency: Frequency) -> int:
    """Fixed period length handed to the capsule contract."""

    if frequency not in _PERIOD_SECONDS:
        raise ScheduleError(f"Unsupported frequency: {frequency}")
    return _PERIOD_SECONDS[frequency]


def step_forward(start: datetime, frequency: Frequency, steps: int) -> datetime:
    """Return ``start`` advanced by ``steps`` whole periods.

    Calendar steps are always measured from ``start`` and clamp to the last
    day of the target month, so Jan 31 advances to Feb 28 and then Mar 31.
    """

    if frequency == Frequency.DAILY:
        return start + timedelta(days=steps)
    if frequency == Frequency.WEEKLY:
        return start + timedelta(weeks=steps)
    if frequency == Frequency.MONTHLY:
        return add_months(start, steps)
    if frequency == Frequency.ANNUALLY:
        return add_months(start, 12 * steps)
    raise ScheduleError(f"Unsupported frequency: {frequency}")


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
