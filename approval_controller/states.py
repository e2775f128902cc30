"""Approval statuses and per-asset records."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from capsule_engine.models import Asset


class ApprovalStatus(Enum):
    UNKNOWN = "UNKNOWN"
    CHECKING = "CHECKING"
    APPROVED = "APPROVED"
    UNAPPROVED = "UNAPPROVED"
    PENDING = "PENDING"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ApprovalRecord:
    asset: Asset
    status: ApprovalStatus
    error: Optional[str] = None

    @property
    def token(self) -> str:
        return self.asset.token

    @property
    def awaiting_approval(self) -> bool:
        return self.status in (ApprovalStatus.UNAPPROVED, ApprovalStatus.FAILED)
