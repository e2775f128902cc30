from .adapter import AdapterError, build_approval_request, draft_to_creation_request, to_base_units
from .interfaces import (
    ContractGateway,
    PriceOracle,
    TransactionError,
    TransactionHandle,
    ValuationError,
)
from .models import (
    ApprovalRequest,
    AssetAmount,
    CreationRequest,
    TransactionEvent,
    TransactionEventType,
)
from .simulator import (
    SimulatedContractGateway,
    SimulatedPriceOracle,
    SimulatedTransaction,
    SimulationError,
)

__all__ = [
    "AdapterError",
    "ApprovalRequest",
    "AssetAmount",
    "ContractGateway",
    "CreationRequest",
    "PriceOracle",
    "SimulatedContractGateway",
    "SimulatedPriceOracle",
    "SimulatedTransaction",
    "SimulationError",
    "TransactionError",
    "TransactionEvent",
    "TransactionEventType",
    "TransactionHandle",
    "ValuationError",
    "build_approval_request",
    "draft_to_creation_request",
    "to_base_units",
]
