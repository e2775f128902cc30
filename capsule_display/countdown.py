"""Remaining-time computation and the host-driven countdown ticker."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from capsule_engine.models import Capsule
from capsule_engine.schedule import add_months


class CapsuleVisual(Enum):
    LOCKED = "locked"
    READY = "ready"
    OPEN = "open"


@dataclass(frozen=True)
class RemainingTime:
    years: int = 0
    months: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    elapsed: bool = False

    def units(self) -> Tuple[Tuple[str, int], ...]:
        return (
            ("year", self.years),
            ("month", self.months),
            ("day", self.days),
            ("hour", self.hours),
            ("minute", self.minutes),
            ("second", self.seconds),
        )


@dataclass(frozen=True)
class CountdownReading:
    remaining: RemainingTime
    text: str
    is_open: bool


def remaining(now: datetime, target: datetime) -> RemainingTime:
    """Calendar-aware time left from ``now`` until ``target``."""

    if now >= target:
        return RemainingTime(elapsed=True)

    months = (target.year - now.year) * 12 + (target.month - now.month)
    while months > 0 and add_months(now, months) > target:
        months -= 1
    anchor = add_months(now, months)

    delta = target - anchor
    hours, rest = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return RemainingTime(
        years=months // 12,
        months=months % 12,
        days=delta.days,
        hours=hours,
        minutes=minutes,
        seconds=seconds,
    )


def format_remaining(value: RemainingTime, max_units: int = 2) -> str:
    parts: List[str] = []
    for name, amount in value.units():
        if amount and len(parts) < max_units:
            parts.append(f"{amount} {name}" + ("" if amount == 1 else "s"))
    if not parts:
        return "0 seconds"
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def capsule_visual(capsule: Capsule, now: datetime) -> CapsuleVisual:
    if now < capsule.distribution_date:
        return CapsuleVisual.LOCKED
    return CapsuleVisual.OPEN if capsule.empty else CapsuleVisual.READY


class CountdownClock:
    """Recomputes the remaining time from an absolute clock on every tick."""

    def __init__(
        self,
        target: datetime,
        clock: Optional[Callable[[], datetime]] = None,
        max_units: int = 2,
    ) -> None:
        self._target = target
        self._clock = clock or _utc_now
        self._max_units = max_units

    @property
    def target(self) -> datetime:
        return self._target

    def tick(self) -> CountdownReading:
        value = remaining(self._clock(), self._target)
        return CountdownReading(
            remaining=value,
            text=format_remaining(value, self._max_units),
            is_open=value.elapsed,
        )

    async def run(
        self,
        on_tick: Callable[[CountdownReading], None],
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        # Runs until the owning task is cancelled.
        while True:
            on_tick(self.tick())
            await sleep(interval)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
