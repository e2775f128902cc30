from .countdown import (
    CapsuleVisual,
    CountdownClock,
    CountdownReading,
    RemainingTime,
    capsule_visual,
    format_remaining,
    remaining,
)
from .valuation import PLACEHOLDER, ValuationSnapshot, format_usd

__all__ = [
    "PLACEHOLDER",
    "CapsuleVisual",
    "CountdownClock",
    "CountdownReading",
    "RemainingTime",
    "ValuationSnapshot",
    "capsule_visual",
    "format_remaining",
    "format_usd",
    "remaining",
]
