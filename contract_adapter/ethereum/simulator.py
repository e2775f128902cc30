"""Simulate the capsule contract layer without network calls."""

import asyncio
import hashlib
import logging
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Mapping, Optional, Sequence, Set

from capsule_engine.models import Asset

from .interfaces import TransactionError, ValuationError
from .models import (
    ApprovalRequest,
    CreationRequest,
    TransactionEvent,
    TransactionEventType,
)


logger = logging.getLogger(__name__)


class SimulationError(ValueError):
    """Raised when a simulated request is malformed."""


class SimulatedTransaction:
    """Replays a fixed lifecycle and applies its effect on confirmation."""

    def __init__(
        self,
        tx_hash: str,
        fail_reason: Optional[str] = None,
        on_confirm=None,
        drop_reason: Optional[str] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.tx_hash = tx_hash
        self._fail_reason = fail_reason
        self._on_confirm = on_confirm
        self._drop_reason = drop_reason
        self._gate = gate

    async def events(self) -> AsyncIterator[TransactionEvent]:
        yield TransactionEvent(kind=TransactionEventType.SUBMITTED, tx_hash=self.tx_hash)
        if self._drop_reason is not None:
            raise TransactionError(self._drop_reason)
        if self._fail_reason is not None:
            yield TransactionEvent(
                kind=TransactionEventType.FAILED,
                tx_hash=self.tx_hash,
                reason=self._fail_reason,
            )
            return
        if self._gate is not None:
            await self._gate.wait()
        if self._on_confirm is not None:
            self._on_confirm()
        yield TransactionEvent(kind=TransactionEventType.CONFIRMED, tx_hash=self.tx_hash)


class SimulatedContractGateway:
    """In-memory stand-in for the wallet and capsule contract."""

    def __init__(self, approved_tokens: Sequence[str] = ()) -> None:
        self._approved: Set[str] = {token.lower() for token in approved_tokens}
        self._fail_approvals: List[str] = []
        self._fail_creations: List[str] = []
        self._fail_queries: List[str] = []
        self._drop_streams: List[str] = []
        self._gate: Optional[asyncio.Event] = None
        self._reject_next = False
        self.allowance_queries: List[str] = []
        self.approval_requests: List[ApprovalRequest] = []
        self.creation_requests: List[CreationRequest] = []
        self.created: List[CreationRequest] = []

    def fail_next_approval(self, reason: str = "User denied transaction signature.") -> None:
        self._fail_approvals.append(reason)

    def fail_next_creation(self, reason: str = "Transaction reverted.") -> None:
        self._fail_creations.append(reason)

    def reject_next_submission(self) -> None:
        self._reject_next = True

    def fail_next_query(self, reason: str = "Allowance query timed out.") -> None:
        self._fail_queries.append(reason)

    def drop_next_stream(self, reason: str = "Connection to node lost.") -> None:
        """The next transaction reports SUBMITTED, then its event stream breaks."""

        self._drop_streams.append(reason)

    def hold_confirmations(self) -> None:
        self._gate = asyncio.Event()

    def release_confirmations(self) -> None:
        if self._gate is not None:
            self._gate.set()
            self._gate = None

    async def query_allowance(self, token_address: str) -> bool:
        self.allowance_queries.append(token_address)
        if self._fail_queries:
            raise TransactionError(self._fail_queries.pop(0))
        return token_address.lower() in self._approved

    async def submit_approval(self, request: ApprovalRequest) -> SimulatedTransaction:
        _validate_approval(request)
        self._check_rejection()
        self.approval_requests.append(request)
        tx_hash = _tx_hash("approve", request.token_address, len(self.approval_requests))
        fail_reason = self._fail_approvals.pop(0) if self._fail_approvals else None
        logger.debug("Simulated approval %s for %s", tx_hash, request.token_address)
        return SimulatedTransaction(
            tx_hash,
            fail_reason=fail_reason,
            on_confirm=lambda: self._approved.add(request.token_address.lower()),
            drop_reason=self._next_drop(),
            gate=self._gate,
        )

    async def submit_capsule_creation(self, request: CreationRequest) -> SimulatedTransaction:
        _validate_creation(request)
        self._check_rejection()
        self.creation_requests.append(request)
        tx_hash = _tx_hash("create", request.beneficiary, len(self.creation_requests))
        fail_reason = self._fail_creations.pop(0) if self._fail_creations else None
        return SimulatedTransaction(
            tx_hash,
            fail_reason=fail_reason,
            on_confirm=lambda: self.created.append(request),
            drop_reason=self._next_drop(),
            gate=self._gate,
        )

    def _check_rejection(self) -> None:
        if self._reject_next:
            self._reject_next = False
            raise TransactionError("Wallet rejected the request.")

    def _next_drop(self) -> Optional[str]:
        return self._drop_streams.pop(0) if self._drop_streams else None


class SimulatedPriceOracle:
    """Values assets from a fixed USD price table."""

    def __init__(self, prices: Mapping[str, Decimal], failing: bool = False) -> None:
        self._prices: Dict[str, Decimal] = {key.lower(): Decimal(value) for key, value in prices.items()}
        self.failing = failing
        self.calls = 0

    async def fetch_usd_valuation(self, assets: Sequence[Asset]) -> Decimal:
        self.calls += 1
        if self.failing:
            raise ValuationError("Price oracle unavailable.")
        total = Decimal(0)
        for asset in assets:
            price = self._prices.get(asset.token.lower())
            if price is None:
                raise ValuationError(f"No price for {asset.token}.")
            total += price * asset.decimal_amount()
        return total


def _validate_approval(request: ApprovalRequest) -> None:
    if not request.token_address:
        raise SimulationError("Approval must name a token.")
    if not request.spender:
        raise SimulationError("Approval must name a spender.")
    if request.amount <= 0:
        raise SimulationError("Approval amount must be positive.")


def _validate_creation(request: CreationRequest) -> None:
    if not request.beneficiary.startswith("0x"):
        raise SimulationError("Beneficiary must be hex-prefixed.")
    if request.period_count < 1 or request.period_size <= 0:
        raise SimulationError("Schedule must have a positive period size and count.")
    if request.value_wei < 0 or any(item.base_units < 0 for item in request.assets):
        raise SimulationError("Asset amounts must be non-negative.")


def _tx_hash(kind: str, subject: str, counter: int) -> str:
    digest = hashlib.sha256(f"{kind}:{subject}:{counter}".encode("utf-8")).hexdigest()
    return "0x" + digest
