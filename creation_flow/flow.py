"""One capsule creation session: draft, approvals and the creation call."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple, Union

from approval_controller.orchestrator import (
    ApprovalOrchestrator,
    ApprovalQueryError,
    ApprovalTransactionError,
)
from approval_controller.states import ApprovalRecord
from capsule_config.settings import PlannerSettings
from capsule_engine.models import (
    Asset,
    CapsuleDraft,
    DistributionSchedule,
    NATIVE_TOKEN,
    Frequency,
    PeriodType,
    ValidationErrors,
)
from capsule_engine.schedule import ScheduleCalculator, ScheduleError, release_dates
from capsule_engine.validation import InputError, collect_errors
from contract_adapter.ethereum.adapter import draft_to_creation_request
from contract_adapter.ethereum.interfaces import ContractGateway, TransactionError
from contract_adapter.ethereum.models import CreationRequest, TransactionEventType
from token_registry.registry import TokenRegistry


logger = logging.getLogger(__name__)


class CreationBlockedError(RuntimeError):
    """Raised when creation or editing is attempted while the gate is closed."""


class CreationFailedError(RuntimeError):
    """Raised when the capsule creation transaction fails."""


class FlowPhase(Enum):
    DRAFTING = "DRAFTING"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    READY = "READY"
    CREATING = "CREATING"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class CapsuleDraftState:
    """Snapshot of everything the presentation layer renders."""

    phase: FlowPhase
    draft: Optional[CapsuleDraft]
    errors: ValidationErrors
    schedule: Optional[DistributionSchedule]
    release_dates: Tuple[datetime, ...]
    approvals: Tuple[ApprovalRecord, ...]
    loading: bool
    complete: bool
    can_create: bool
    action_label: str
    last_error: Optional[str] = None


class CapsuleCreationFlow:
    """Coordinates validation, scheduling, approvals and creation."""

    def __init__(
        self,
        gateway: ContractGateway,
        registry: TokenRegistry,
        settings: Optional[PlannerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or PlannerSettings()
        self._gateway = gateway
        self._registry = registry
        self._clock = clock or _utc_now
        self._calculator = ScheduleCalculator()
        self._orchestrator = ApprovalOrchestrator(
            gateway,
            spender=self._settings.capsule_contract_address,
            approval_amount=self._settings.unlimited_approval_amount,
        )
        self._draft = CapsuleDraft(assets=(Asset(token=NATIVE_TOKEN, amount="0"),))
        self._orchestrator.stage_assets(self._draft.assets)
        self._loading = False
        self._creating = False
        self._complete = False
        self._last_error: Optional[str] = None
        self._created: Optional[CreationRequest] = None

    @property
    def draft(self) -> Optional[CapsuleDraft]:
        return None if self._complete else self._draft

    @property
    def errors(self) -> ValidationErrors:
        return collect_errors(self._draft, self._clock())

    @property
    def schedule(self) -> Optional[DistributionSchedule]:
        try:
            return self._build_schedule()
        except (InputError, ScheduleError):
            return None

    @property
    def approvals(self) -> Tuple[ApprovalRecord, ...]:
        return self._orchestrator.records

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def created_request(self) -> Optional[CreationRequest]:
        return self._created

    @property
    def can_create(self) -> bool:
        return (
            not self._loading
            and not self._complete
            and self._orchestrator.all_approved
            and not self.errors
        )

    @property
    def action_label(self) -> str:
        if self._loading:
            return "Loading"
        offered = self._orchestrator.offered
        if offered is not None:
            return f"Approve {self._symbol(offered.token)}"
        unresolved = self._orchestrator.unresolved
        if unresolved:
            return f"Check {self._symbol(unresolved[0].token)}"
        return "Create"

    @property
    def phase(self) -> FlowPhase:
        if self._complete:
            return FlowPhase.COMPLETE
        if self._creating:
            return FlowPhase.CREATING
        if self.errors:
            return FlowPhase.DRAFTING
        if not self._orchestrator.all_approved:
            return FlowPhase.AWAITING_APPROVAL
        return FlowPhase.READY

    @property
    def state(self) -> CapsuleDraftState:
        schedule = self.schedule
        return CapsuleDraftState(
            phase=self.phase,
            draft=self.draft,
            errors=self.errors,
            schedule=schedule,
            release_dates=release_dates(schedule) if schedule else (),
            approvals=self.approvals,
            loading=self._loading,
            complete=self._complete,
            can_create=self.can_create,
            action_label=self.action_label,
            last_error=self._last_error,
        )

    def set_period_type(self, value: Union[PeriodType, str]) -> None:
        self._update(period_type=_parse_period_type(value))

    def set_distribution_date(self, value: str) -> None:
        self._update(distribution_date=value)

    def set_frequency(self, value: Union[Frequency, str]) -> None:
        self._update(frequency=_parse_frequency(value))

    def set_period_count(self, value: str) -> None:
        self._update(period_count=value)

    def set_beneficiary(self, value: str) -> None:
        self._update(beneficiary=value)

    def set_adding_assets_allowed(self, value: bool) -> None:
        self._update(adding_assets_allowed=bool(value))

    async def set_assets(self, assets: Iterable[Asset]) -> Tuple[ApprovalRecord, ...]:
        if self._loading:
            raise CreationBlockedError("Assets cannot change while a transaction is in flight.")
        assets = tuple(assets)
        self._update(assets=assets)
        return await self._checked(self._orchestrator.sync_assets(assets))

    async def recheck_approvals(self) -> Tuple[ApprovalRecord, ...]:
        """Retry allowance queries that previously failed."""

        self._require_editable()
        if self._loading:
            raise CreationBlockedError("Another transaction is in flight.")
        return await self._checked(self._orchestrator.recheck())

    async def request_approval(self, token: Optional[str] = None) -> ApprovalRecord:
        self._require_editable()
        if self._loading:
            raise CreationBlockedError("Another transaction is in flight.")

        offered = self._orchestrator.offered
        self._loading = True
        try:
            record = await self._orchestrator.request_approval(token)
        except (ApprovalTransactionError, ApprovalQueryError) as exc:
            self._last_error = str(exc)
            logger.warning("Approval failed: %s", exc)
            return self._orchestrator.record(offered.token)
        finally:
            self._loading = False
        self._last_error = None
        return record

    async def create_capsule(self) -> CreationRequest:
        if self._complete:
            raise CreationBlockedError("Capsule already created.")
        if self._loading:
            raise CreationBlockedError("Another transaction is in flight.")
        errors = self.errors
        if errors:
            raise CreationBlockedError(
                "Draft is invalid: " + "; ".join(errors.to_dict().values())
            )
        if not self._orchestrator.all_approved:
            raise CreationBlockedError("Every asset must be approved before creation.")

        schedule = self._build_schedule()
        request = draft_to_creation_request(self._draft, schedule, self._registry)

        self._loading = True
        self._creating = True
        failure: Optional[str] = "Transaction ended without confirmation."
        cause: Optional[Exception] = None
        try:
            handle = await self._gateway.submit_capsule_creation(request)
            async for event in handle.events():
                if event.kind == TransactionEventType.SUBMITTED:
                    logger.info("Capsule creation submitted: %s", event.tx_hash)
                elif event.kind == TransactionEventType.CONFIRMED:
                    logger.info("Capsule creation confirmed: %s", event.tx_hash)
                    failure = None
                elif event.kind == TransactionEventType.FAILED:
                    failure = event.reason or "Capsule creation failed."
        except (TransactionError, ValueError) as exc:
            failure = str(exc) or exc.__class__.__name__
            cause = exc
        finally:
            self._loading = False
            self._creating = False

        if failure is not None:
            logger.warning("Capsule creation failed: %s", failure)
            self._last_error = failure
            raise CreationFailedError(failure) from cause

        self._last_error = None
        self._complete = True
        self._created = request
        return request

    async def primary_action(
        self,
    ) -> Union[ApprovalRecord, Tuple[ApprovalRecord, ...], CreationRequest, None]:
        """Single-button behaviour: approve the next asset, re-check failed
        allowance queries, else create."""

        if self._loading:
            return None
        if self._orchestrator.offered is not None:
            return await self.request_approval()
        if self._orchestrator.unresolved:
            return await self.recheck_approvals()
        return await self.create_capsule()

    async def _checked(self, pending) -> Tuple[ApprovalRecord, ...]:
        try:
            records = await pending
        except ApprovalQueryError as exc:
            self._last_error = str(exc)
            logger.warning("Allowance check failed: %s", exc)
            return self._orchestrator.records
        self._last_error = None
        return records

    def _symbol(self, address: str) -> str:
        token = self._registry.lookup(address)
        return token.symbol if token else address

    def _build_schedule(self) -> DistributionSchedule:
        return self._calculator.build(
            self._draft.period_type,
            self._draft.frequency,
            self._draft.period_count,
            self._draft.distribution_date,
            self._clock(),
        )

    def _update(self, **changes) -> None:
        self._require_editable()
        self._draft = replace(self._draft, **changes)

    def _require_editable(self) -> None:
        if self._complete:
            raise CreationBlockedError("Capsule already created; start a new session.")
        if self._creating:
            raise CreationBlockedError("Capsule creation is in flight.")


def _parse_period_type(value: Union[PeriodType, str]) -> PeriodType:
    if isinstance(value, PeriodType):
        return value
    period_type = PeriodType.__members__.get(str(value).strip().upper())
    if period_type is None:
        raise ValueError(f"Unsupported period type: {value}")
    return period_type


def _parse_frequency(value: Union[Frequency, str]) -> Frequency:
    if isinstance(value, Frequency):
        return value
    frequency = Frequency.__members__.get(str(value).strip().upper())
    if frequency is None:
        raise ValueError(f"Unsupported frequency: {value}")
    return frequency


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
