from .orchestrator import (
    ApprovalOrchestrator,
    ApprovalQueryError,
    ApprovalSequenceError,
    ApprovalTransactionError,
    ApprovalTransitionError,
)
from .states import ApprovalRecord, ApprovalStatus

__all__ = [
    "ApprovalOrchestrator",
    "ApprovalQueryError",
    "ApprovalRecord",
    "ApprovalSequenceError",
    "ApprovalStatus",
    "ApprovalTransactionError",
    "ApprovalTransitionError",
]
