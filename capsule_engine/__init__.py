from .models import (
    NATIVE_TOKEN,
    Asset,
    Capsule,
    CapsuleDraft,
    DistributionSchedule,
    Frequency,
    PeriodType,
    ReleaseEvent,
    Token,
    ValidationErrors,
)
from .schedule import (
    ScheduleCalculator,
    ScheduleError,
    period_size_seconds,
    release_dates,
    release_events,
    validate_schedule,
)
from .validation import (
    AddressFormatError,
    DateFormatError,
    InputError,
    PastDateError,
    PeriodFormatError,
    PeriodRangeError,
    SinglePeriodError,
    collect_errors,
    is_valid,
    validate_address,
    validate_date,
    validate_periods,
)

__all__ = [
    "NATIVE_TOKEN",
    "AddressFormatError",
    "Asset",
    "Capsule",
    "CapsuleDraft",
    "DateFormatError",
    "DistributionSchedule",
    "Frequency",
    "InputError",
    "PastDateError",
    "PeriodFormatError",
    "PeriodRangeError",
    "PeriodType",
    "ReleaseEvent",
    "ScheduleCalculator",
    "ScheduleError",
    "SinglePeriodError",
    "Token",
    "ValidationErrors",
    "collect_errors",
    "is_valid",
    "period_size_seconds",
    "release_dates",
    "release_events",
    "validate_address",
    "validate_date",
    "validate_periods",
    "validate_schedule",
]
