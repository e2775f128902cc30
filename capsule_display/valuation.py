"""USD valuation of a capsule's assets with a placeholder fallback."""

import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Iterable, Optional

from capsule_engine.models import Asset
from contract_adapter.ethereum.interfaces import PriceOracle, ValuationError


logger = logging.getLogger(__name__)

PLACEHOLDER = "----"


def format_usd(value: Decimal) -> str:
    if not value.is_finite():
        raise ValuationError(f"Valuation is not a finite number: {value}")
    with localcontext() as context:
        # Whole dollars need one significant digit per integer digit.
        context.prec = max(context.prec, value.adjusted() + 2)
        rounded = value.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return f"${rounded:,}"


class ValuationSnapshot:
    """Holds the latest oracle valuation; failures only reset the display."""

    def __init__(self, oracle: PriceOracle, placeholder: str = PLACEHOLDER) -> None:
        self._oracle = oracle
        self._placeholder = placeholder
        self._value: Optional[Decimal] = None
        self._error: Optional[str] = None

    @property
    def value(self) -> Optional[Decimal]:
        return self._value

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def display(self) -> str:
        if self._value is None:
            return self._placeholder
        return format_usd(self._value)

    async def refresh(self, assets: Iterable[Asset]) -> str:
        try:
            value = Decimal(await self._oracle.fetch_usd_valuation(tuple(assets)))
            display = format_usd(value)
        except Exception as exc:
            # Valuation never blocks the caller; the placeholder is shown instead.
            logger.warning("Valuation failed: %s", exc)
            self._value = None
            self._error = str(exc) or exc.__class__.__name__
            return self.display
        self._value = value
        self._error = None
        return display
