"""Ethereum adapter models for capsule transactions and their lifecycle."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class TransactionEventType(Enum):
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionEvent:
    kind: TransactionEventType
    tx_hash: str = ""
    reason: str = ""


@dataclass(frozen=True)
class ApprovalRequest:
    token_address: str
    spender: str
    amount: int


@dataclass(frozen=True)
class AssetAmount:
    token: str
    base_units: int


@dataclass(frozen=True)
class CreationRequest:
    beneficiary: str
    start_timestamp: int
    period_size: int
    period_count: int
    assets: Tuple[AssetAmount, ...]
    adding_assets_allowed: bool
    value_wei: int
