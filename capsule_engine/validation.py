"""Field validation for raw capsule draft input."""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from .models import CapsuleDraft, PeriodType, ValidationErrors


ADDRESS_LENGTH = 42
DATE_FORMAT = "%m/%d/%Y"


class InputError(ValueError):
    """Raised when a raw input field violates a domain rule."""


class DateFormatError(InputError):
    pass


class PastDateError(InputError):
    pass


class AddressFormatError(InputError):
    pass


class PeriodFormatError(InputError):
    pass


class PeriodRangeError(InputError):
    pass


class SinglePeriodError(InputError):
    pass


def parse_date(raw: str) -> datetime:
    """Parse an mm/dd/yyyy string as midnight UTC."""

    try:
        parsed = datetime.strptime(raw.strip(), DATE_FORMAT)
    except (AttributeError, ValueError) as exc:
        raise DateFormatError("Incorrect Date format") from exc
    return parsed.replace(tzinfo=timezone.utc)


def validate_date(raw: str, now: datetime) -> datetime:
    value = parse_date(raw)
    if value <= now:
        raise PastDateError("Date must be in future")
    return value


def validate_address(raw: str) -> str:
    # Length is the only bar; checksum and hex alphabet are not inspected.
    if len(raw) != ADDRESS_LENGTH:
        raise AddressFormatError("Invalid Address")
    return raw


def validate_periods(raw: str) -> int:
    text = raw.strip()
    if not text:
        raise PeriodRangeError("Periods must be a positive number")
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise PeriodFormatError("Invalid Number") from exc
    if not value.is_finite():
        raise PeriodFormatError("Invalid Number")
    if value <= 0:
        raise PeriodRangeError("Periods must be a positive number")
    if value == 1:
        raise SinglePeriodError("For only one period, use an Immediate Capsule")
    if value != value.to_integral_value():
        raise PeriodFormatError("Periods must be a whole number")
    return int(value)


def collect_errors(draft: CapsuleDraft, now: datetime) -> ValidationErrors:
    """Run every field check once and gather the messages."""

    return ValidationErrors(
        date=_message(validate_date, draft.distribution_date, now),
        beneficiary=_message(validate_address, draft.beneficiary),
        periods=(
            None
            if draft.period_type == PeriodType.IMMEDIATE
            else _message(validate_periods, draft.period_count)
        ),
    )


def is_valid(draft: CapsuleDraft, now: datetime) -> bool:
    return not collect_errors(draft, now)


def _message(check, *args) -> Optional[str]:
    try:
        check(*args)
    except InputError as exc:
        return str(exc)
    return None
