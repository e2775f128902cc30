"""Local-first FastAPI shell for the capsule planner."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from approval_controller.orchestrator import (
    ApprovalSequenceError,
    ApprovalTransactionError,
    ApprovalTransitionError,
)
from approval_controller.states import ApprovalRecord
from capsule_config.logging_setup import configure_logging
from capsule_config.settings import load_settings
from capsule_display.countdown import CountdownClock, capsule_visual
from capsule_display.valuation import ValuationSnapshot
from capsule_engine.models import Asset, Capsule, CapsuleDraft
from contract_adapter.ethereum.interfaces import ContractGateway, PriceOracle
from contract_adapter.ethereum.models import CreationRequest
from contract_adapter.ethereum.simulator import SimulatedContractGateway, SimulatedPriceOracle
from creation_flow.flow import (
    CapsuleCreationFlow,
    CapsuleDraftState,
    CreationBlockedError,
    CreationFailedError,
)
from token_registry.registry import FileTokenRegistry, StaticTokenRegistry, TokenRegistry

app = FastAPI(title="Capsule Planner", description="Local-first web shell")

_SETTINGS = load_settings()
configure_logging(_SETTINGS.log_level)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _build_registry() -> TokenRegistry:
    if _SETTINGS.token_list_path:
        return FileTokenRegistry(Path(_SETTINGS.token_list_path))
    return StaticTokenRegistry()


_CLOCK: Callable[[], datetime] = _utc_now
_GATEWAY: ContractGateway = SimulatedContractGateway()
_REGISTRY: TokenRegistry = _build_registry()
_ORACLE: PriceOracle = SimulatedPriceOracle({})
_FLOW = CapsuleCreationFlow(_GATEWAY, _REGISTRY, settings=_SETTINGS, clock=_CLOCK)


class DraftUpdate(BaseModel):
    beneficiary: Optional[str] = None
    period_type: Optional[str] = None
    distribution_date: Optional[str] = None
    frequency: Optional[str] = None
    period_count: Optional[str] = None
    adding_assets_allowed: Optional[bool] = None


class AssetInput(BaseModel):
    token: str
    amount: str


class AssetsRequest(BaseModel):
    assets: List[AssetInput]


class ApprovalBody(BaseModel):
    token: Optional[str] = None


class InspectRequest(BaseModel):
    capsule_id: int = 0
    beneficiary: str = ""
    distribution_date: datetime
    empty: bool = False
    assets: List[AssetInput] = []


@app.middleware("http")
async def _local_only(request: Request, call_next):
    client = request.client
    if client is not None:
        host = client.host
        if host not in {"127.0.0.1", "::1", "testclient"}:
            return JSONResponse({"error": "Remote access disabled."}, status_code=403)
    return await call_next(request)


async def _handle_errors(request: Request, exc: Exception):
    return JSONResponse({"error": str(exc)}, status_code=400)


for _exc_class in (
    ApprovalSequenceError,
    ApprovalTransactionError,
    ApprovalTransitionError,
    CreationBlockedError,
    CreationFailedError,
    ValueError,
    KeyError,
):
    app.add_exception_handler(_exc_class, _handle_errors)


@app.get("/api/draft")
async def get_draft():
    return _state_to_dict(_FLOW.state)


@app.post("/api/draft")
async def update_draft(payload: DraftUpdate):
    if payload.period_type is not None:
        _FLOW.set_period_type(payload.period_type)
    if payload.frequency is not None:
        _FLOW.set_frequency(payload.frequency)
    if payload.period_count is not None:
        _FLOW.set_period_count(payload.period_count)
    if payload.distribution_date is not None:
        _FLOW.set_distribution_date(payload.distribution_date)
    if payload.beneficiary is not None:
        _FLOW.set_beneficiary(payload.beneficiary)
    if payload.adding_assets_allowed is not None:
        _FLOW.set_adding_assets_allowed(payload.adding_assets_allowed)
    return _state_to_dict(_FLOW.state)


@app.put("/api/draft/assets")
async def replace_assets(payload: AssetsRequest):
    await _FLOW.set_assets(_build_assets(payload.assets))
    return _state_to_dict(_FLOW.state)


@app.post("/api/approvals")
async def request_approval(payload: ApprovalBody):
    record = await _FLOW.request_approval(payload.token)
    return {"approval": _record_to_dict(record), "state": _state_to_dict(_FLOW.state)}


@app.post("/api/approvals/recheck")
async def recheck_approvals():
    await _FLOW.recheck_approvals()
    return _state_to_dict(_FLOW.state)


@app.post("/api/capsules")
async def create_capsule():
    request = await _FLOW.create_capsule()
    return {"request": _request_to_dict(request), "state": _state_to_dict(_FLOW.state)}


@app.post("/api/draft/reset")
async def reset_draft():
    global _FLOW
    _FLOW = CapsuleCreationFlow(_GATEWAY, _REGISTRY, settings=_SETTINGS, clock=_CLOCK)
    return _state_to_dict(_FLOW.state)


@app.post("/api/capsules/inspect")
async def inspect_capsule(payload: InspectRequest):
    target = payload.distribution_date
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    assets = _build_assets(payload.assets)
    capsule = Capsule(
        capsule_id=payload.capsule_id,
        beneficiary=payload.beneficiary,
        distribution_date=target,
        assets=assets,
        empty=payload.empty,
    )

    now = _CLOCK()
    reading = CountdownClock(
        target, clock=lambda: now, max_units=_SETTINGS.countdown_units
    ).tick()
    valuation = ValuationSnapshot(_ORACLE, placeholder=_SETTINGS.valuation_placeholder)
    await valuation.refresh(assets)

    return {
        "capsule_id": capsule.capsule_id,
        "countdown": {
            "remaining": asdict(reading.remaining),
            "text": reading.text,
            "is_open": reading.is_open,
        },
        "visual": capsule_visual(capsule, now).value,
        "valuation": {"display": valuation.display, "error": valuation.error},
    }


def _build_assets(items: List[AssetInput]) -> Tuple[Asset, ...]:
    return tuple(Asset(token=item.token, amount=item.amount) for item in items)


def _state_to_dict(state: CapsuleDraftState) -> dict:
    schedule = state.schedule
    return {
        "phase": state.phase.value,
        "draft": _draft_to_dict(state.draft) if state.draft is not None else None,
        "errors": state.errors.to_dict(),
        "schedule": (
            {
                "period_type": schedule.period_type.value,
                "start_date": schedule.start_date.isoformat(),
                "frequency": schedule.frequency.value,
                "period_count": schedule.period_count,
            }
            if schedule is not None
            else None
        ),
        "release_dates": [value.isoformat() for value in state.release_dates],
        "approvals": [_record_to_dict(record) for record in state.approvals],
        "loading": state.loading,
        "complete": state.complete,
        "can_create": state.can_create,
        "action_label": state.action_label,
        "last_error": state.last_error,
    }


def _draft_to_dict(draft: CapsuleDraft) -> dict:
    return {
        "beneficiary": draft.beneficiary,
        "period_type": draft.period_type.value,
        "distribution_date": draft.distribution_date,
        "frequency": draft.frequency.value,
        "period_count": draft.period_count,
        "assets": [{"token": item.token, "amount": item.amount} for item in draft.assets],
        "adding_assets_allowed": draft.adding_assets_allowed,
    }


def _record_to_dict(record: ApprovalRecord) -> dict:
    return {
        "token": record.token,
        "amount": record.asset.amount,
        "status": record.status.value,
        "error": record.error,
    }


def _request_to_dict(request: CreationRequest) -> dict:
    return {
        "beneficiary": request.beneficiary,
        "start_timestamp": request.start_timestamp,
        "period_size": request.period_size,
        "period_count": request.period_count,
        "assets": [
            {"token": item.token, "base_units": str(item.base_units)}
            for item in request.assets
        ],
        "adding_assets_allowed": request.adding_assets_allowed,
        "value_wei": str(request.value_wei),
    }


def _reset_state(
    gateway: Optional[ContractGateway] = None,
    registry: Optional[TokenRegistry] = None,
    oracle: Optional[PriceOracle] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> None:
    global _CLOCK, _GATEWAY, _REGISTRY, _ORACLE, _FLOW
    _CLOCK = clock or _utc_now
    _GATEWAY = gateway or SimulatedContractGateway()
    _REGISTRY = registry or _build_registry()
    _ORACLE = oracle or SimulatedPriceOracle({})
    _FLOW = CapsuleCreationFlow(_GATEWAY, _REGISTRY, settings=_SETTINGS, clock=_CLOCK)
