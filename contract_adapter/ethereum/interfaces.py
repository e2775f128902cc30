"""Collaborator contracts consumed by the capsule core."""

from decimal import Decimal
from typing import AsyncIterator, Protocol, Sequence

from capsule_engine.models import Asset

from .models import ApprovalRequest, CreationRequest, TransactionEvent


class TransactionError(RuntimeError):
    """Raised when a transaction is rejected before it reaches the chain."""


class ValuationError(RuntimeError):
    """Raised when the price oracle cannot value an asset set."""


class TransactionHandle(Protocol):
    tx_hash: str

    def events(self) -> AsyncIterator[TransactionEvent]:
        ...


class ContractGateway(Protocol):
    async def query_allowance(self, token_address: str) -> bool:
        ...

    async def submit_approval(self, request: ApprovalRequest) -> TransactionHandle:
        ...

    async def submit_capsule_creation(self, request: CreationRequest) -> TransactionHandle:
        ...


class PriceOracle(Protocol):
    async def fetch_usd_valuation(self, assets: Sequence[Asset]) -> Decimal:
        ...
