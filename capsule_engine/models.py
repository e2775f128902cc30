"""Domain models for capsule drafting and scheduling."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Tuple


NATIVE_TOKEN = "ETH"


class PeriodType(Enum):
    IMMEDIATE = "immediate"
    STAGGERED = "staggered"


class Frequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ANNUALLY = "annually"


@dataclass(frozen=True)
class Asset:
    """One token and the decimal amount of it locked in a capsule."""

    token: str
    amount: str

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("Asset token must be non-empty.")
        try:
            value = Decimal(self.amount)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Asset amount is not numeric: {self.amount!r}") from exc
        if not value.is_finite() or value < 0:
            raise ValueError("Asset amount must be a non-negative number.")

    @property
    def is_native(self) -> bool:
        return self.token == NATIVE_TOKEN

    def decimal_amount(self) -> Decimal:
        return Decimal(self.amount)


@dataclass(frozen=True)
class Token:
    address: str
    symbol: str
    decimals: int
    logo_uri: str = ""
    name: str = ""

    def __post_init__(self) -> None:
        if self.decimals < 0:
            raise ValueError("Token decimals must be non-negative.")


@dataclass(frozen=True)
class DistributionSchedule:
    """Canonical release schedule derived from validated draft input."""

    period_type: PeriodType
    start_date: datetime
    frequency: Frequency
    period_count: int


@dataclass(frozen=True)
class CapsuleDraft:
    """Raw, user-entered capsule fields prior to validation."""

    beneficiary: str = ""
    period_type: PeriodType = PeriodType.IMMEDIATE
    distribution_date: str = ""
    frequency: Frequency = Frequency.MONTHLY
    period_count: str = ""
    assets: Tuple[Asset, ...] = (Asset(token=NATIVE_TOKEN, amount="0"),)
    adding_assets_allowed: bool = True


@dataclass(frozen=True)
class Capsule:
    """Read-side capsule record supplied by the contract layer."""

    capsule_id: int
    beneficiary: str
    distribution_date: datetime
    assets: Tuple[Asset, ...] = ()
    empty: bool = False


@dataclass(frozen=True)
class ValidationErrors:
    """Per-field messages produced by a validation pass."""

    date: Optional[str] = None
    beneficiary: Optional[str] = None
    periods: Optional[str] = None

    def __bool__(self) -> bool:
        return any((self.date, self.beneficiary, self.periods))

    def to_dict(self) -> dict:
        return {
            key: value
            for key, value in (
                ("date", self.date),
                ("beneficiary", self.beneficiary),
                ("periods", self.periods),
            )
            if value
        }


@dataclass(frozen=True)
class ReleaseEvent:
    sequence: int
    release_at: datetime
