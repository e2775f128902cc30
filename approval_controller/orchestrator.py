"""Sequential spend-approval orchestration for a capsule's working set."""

import asyncio
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from capsule_engine.models import NATIVE_TOKEN, Asset
from contract_adapter.ethereum.adapter import build_approval_request
from contract_adapter.ethereum.interfaces import ContractGateway, TransactionError
from contract_adapter.ethereum.models import TransactionEvent, TransactionEventType

from .states import ApprovalRecord, ApprovalStatus


logger = logging.getLogger(__name__)


class ApprovalTransitionError(RuntimeError):
    """Raised when an approval record is moved along an illegal edge."""


class ApprovalSequenceError(RuntimeError):
    """Raised when approvals are requested out of insertion order."""


class ApprovalTransactionError(RuntimeError):
    """Raised when an approval transaction fails or is rejected."""


class ApprovalQueryError(RuntimeError):
    """Raised when an allowance query fails; the record is left UNKNOWN."""


_TRANSITIONS: Dict[ApprovalStatus, FrozenSet[ApprovalStatus]] = {
    ApprovalStatus.UNKNOWN: frozenset({ApprovalStatus.CHECKING, ApprovalStatus.APPROVED}),
    ApprovalStatus.CHECKING: frozenset(
        {ApprovalStatus.APPROVED, ApprovalStatus.UNAPPROVED, ApprovalStatus.UNKNOWN}
    ),
    ApprovalStatus.UNAPPROVED: frozenset({ApprovalStatus.PENDING, ApprovalStatus.CHECKING}),
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.CHECKING, ApprovalStatus.FAILED}),
    ApprovalStatus.FAILED: frozenset({ApprovalStatus.UNAPPROVED, ApprovalStatus.CHECKING}),
    ApprovalStatus.APPROVED: frozenset(),
}


class ApprovalOrchestrator:
    """Tracks approval status per token and approves them one at a time."""

    def __init__(
        self,
        gateway: ContractGateway,
        spender: str,
        approval_amount: int,
        native_token: str = NATIVE_TOKEN,
    ) -> None:
        self._gateway = gateway
        self._spender = spender
        self._approval_amount = approval_amount
        self._native_token = native_token
        self._records: Dict[str, ApprovalRecord] = {}

    @property
    def records(self) -> Tuple[ApprovalRecord, ...]:
        return tuple(self._records.values())

    @property
    def pending(self) -> Optional[ApprovalRecord]:
        for record in self._records.values():
            if record.status == ApprovalStatus.PENDING:
                return record
        return None

    @property
    def offered(self) -> Optional[ApprovalRecord]:
        """The single asset the user may approve next, in insertion order."""

        if self.pending is not None:
            return None
        for record in self._records.values():
            if record.awaiting_approval:
                return record
        return None

    @property
    def all_approved(self) -> bool:
        return all(
            record.status == ApprovalStatus.APPROVED for record in self._records.values()
        )

    @property
    def unresolved(self) -> Tuple[ApprovalRecord, ...]:
        """Records whose allowance query failed and must be re-checked."""

        return tuple(
            record
            for record in self._records.values()
            if record.status == ApprovalStatus.UNKNOWN
        )

    def record(self, token: str) -> ApprovalRecord:
        if token not in self._records:
            raise KeyError(f"Unknown asset: {token}")
        return self._records[token]

    async def sync_assets(self, assets: Iterable[Asset]) -> Tuple[ApprovalRecord, ...]:
        """Align records with the working set, querying new and unresolved tokens."""

        await self._check_all(self.stage_assets(assets))
        return self.records

    async def recheck(self) -> Tuple[ApprovalRecord, ...]:
        """Query every record left UNKNOWN by a failed allowance query."""

        await self._check_all(tuple(record.token for record in self.unresolved))
        return self.records

    def stage_assets(self, assets: Iterable[Asset]) -> Tuple[str, ...]:
        """Replace the working set; returns the tokens that need a query."""

        latest: Dict[str, Asset] = {}
        for asset in assets:
            latest[asset.token] = asset

        pending = self.pending
        if pending is not None and pending.token not in latest:
            raise ApprovalSequenceError(
                f"Approval for {pending.token} is pending; it cannot be removed."
            )

        records: Dict[str, ApprovalRecord] = {}
        to_query: List[str] = []
        for token, asset in latest.items():
            existing = self._records.get(token)
            if existing is None:
                records[token] = ApprovalRecord(asset=asset, status=ApprovalStatus.UNKNOWN)
            else:
                records[token] = ApprovalRecord(
                    asset=asset, status=existing.status, error=existing.error
                )
            if records[token].status != ApprovalStatus.UNKNOWN:
                continue
            if token == self._native_token:
                records[token] = ApprovalRecord(asset=asset, status=ApprovalStatus.APPROVED)
                logger.debug("%s: native asset approved", token)
            else:
                to_query.append(token)
        self._records = records
        return tuple(to_query)

    async def refresh(self, token: str) -> ApprovalRecord:
        record = self.record(token)
        if record.status == ApprovalStatus.APPROVED:
            return record
        if record.status in (ApprovalStatus.PENDING, ApprovalStatus.CHECKING):
            raise ApprovalTransitionError(f"{token} is {record.status.value}; refresh later.")
        if record.status == ApprovalStatus.UNKNOWN and token == self._native_token:
            self._transition(token, ApprovalStatus.APPROVED)
            return self.record(token)
        await self._check(token)
        return self.record(token)

    async def request_approval(self, token: Optional[str] = None) -> ApprovalRecord:
        if self.pending is not None:
            raise ApprovalSequenceError(
                f"Approval for {self.pending.token} is still pending."
            )
        offered = self.offered
        if offered is None:
            raise ApprovalSequenceError("No asset is waiting for approval.")
        if token is not None and token != offered.token:
            raise ApprovalSequenceError(f"Approve {offered.token} before {token}.")

        token = offered.token
        if offered.status == ApprovalStatus.FAILED:
            self._transition(token, ApprovalStatus.UNAPPROVED)
        self._transition(token, ApprovalStatus.PENDING)

        request = build_approval_request(token, self._spender, self._approval_amount)
        try:
            handle = await self._gateway.submit_approval(request)
        except TransactionError as exc:
            self._transition(token, ApprovalStatus.FAILED, error=str(exc))
            raise ApprovalTransactionError(str(exc)) from exc
        except Exception as exc:
            self._transition(token, ApprovalStatus.FAILED, error=str(exc))
            raise

        try:
            async for event in handle.events():
                self.apply_event(token, event)
        except TransactionError as exc:
            self._settle_interrupted(token, str(exc))
            raise ApprovalTransactionError(str(exc)) from exc
        except Exception as exc:
            self._settle_interrupted(token, str(exc) or exc.__class__.__name__)
            raise

        record = self.record(token)
        if record.status == ApprovalStatus.PENDING:
            self._transition(
                token, ApprovalStatus.FAILED, error="Transaction ended without confirmation."
            )
            record = self.record(token)
        if record.status == ApprovalStatus.FAILED:
            raise ApprovalTransactionError(record.error or "Approval failed.")
        if record.status == ApprovalStatus.CHECKING:
            await self._query(token)
        return self.record(token)

    def apply_event(self, token: str, event: TransactionEvent) -> ApprovalRecord:
        record = self.record(token)
        if record.status != ApprovalStatus.PENDING:
            raise ApprovalTransitionError(
                f"{token} received {event.kind.value} while {record.status.value}."
            )
        if event.kind == TransactionEventType.SUBMITTED:
            logger.info("Approval for %s submitted: %s", token, event.tx_hash)
        elif event.kind == TransactionEventType.CONFIRMED:
            logger.info("Approval for %s confirmed: %s", token, event.tx_hash)
            self._transition(token, ApprovalStatus.CHECKING)
        elif event.kind == TransactionEventType.FAILED:
            logger.warning("Approval for %s failed: %s", token, event.reason)
            self._transition(token, ApprovalStatus.FAILED, error=event.reason or "Approval failed.")
        return self.record(token)

    async def _check_all(self, tokens: Tuple[str, ...]) -> None:
        results = await asyncio.gather(
            *(self._check(token) for token in tokens), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _check(self, token: str) -> None:
        self._transition(token, ApprovalStatus.CHECKING)
        await self._query(token)

    async def _query(self, token: str) -> None:
        try:
            approved = await self._gateway.query_allowance(token)
        except TransactionError as exc:
            self._mark_unknown(token)
            raise ApprovalQueryError(f"Allowance check for {token} failed: {exc}") from exc
        except Exception:
            self._mark_unknown(token)
            raise
        if token not in self._records:
            # Asset was removed from the working set while the query ran.
            return
        self._transition(
            token, ApprovalStatus.APPROVED if approved else ApprovalStatus.UNAPPROVED
        )

    def _mark_unknown(self, token: str) -> None:
        if token in self._records:
            self._transition(token, ApprovalStatus.UNKNOWN)

    def _settle_interrupted(self, token: str, reason: str) -> None:
        # A broken event stream must not leave the record PENDING or CHECKING.
        if token not in self._records:
            return
        status = self.record(token).status
        if status == ApprovalStatus.PENDING:
            logger.warning("Approval for %s interrupted: %s", token, reason)
            self._transition(token, ApprovalStatus.FAILED, error=reason)
        elif status == ApprovalStatus.CHECKING:
            self._transition(token, ApprovalStatus.UNKNOWN)

    def _transition(
        self, token: str, status: ApprovalStatus, error: Optional[str] = None
    ) -> None:
        record = self.record(token)
        if status not in _TRANSITIONS[record.status]:
            raise ApprovalTransitionError(
                f"{token}: {record.status.value} -> {status.value} is not allowed."
            )
        logger.debug("%s: %s -> %s", token, record.status.value, status.value)
        self._records[token] = ApprovalRecord(asset=record.asset, status=status, error=error)
