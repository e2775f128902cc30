"""Operator CLI for the capsule planner."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from approval_controller.orchestrator import (
    ApprovalSequenceError,
    ApprovalTransactionError,
    ApprovalTransitionError,
)
from approval_controller.states import ApprovalRecord
from capsule_config.logging_setup import configure_logging
from capsule_config.settings import PlannerSettings, load_settings
from capsule_display.countdown import CountdownClock, capsule_visual
from capsule_engine.models import Asset, Capsule, CapsuleDraft, Frequency, PeriodType
from capsule_engine.schedule import ScheduleCalculator, period_size_seconds, release_dates
from capsule_engine.validation import collect_errors
from contract_adapter.ethereum.models import CreationRequest
from contract_adapter.ethereum.simulator import SimulatedContractGateway
from creation_flow.flow import CapsuleCreationFlow, CreationBlockedError, CreationFailedError
from token_registry.registry import FileTokenRegistry, StaticTokenRegistry, TokenRegistry


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="capsule-planner")
    parser.add_argument("--log-level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate")
    _add_draft_args(validate_parser)
    validate_parser.set_defaults(func=_validate)

    schedule_parser = subparsers.add_parser("schedule")
    _add_schedule_args(schedule_parser)
    schedule_parser.set_defaults(func=_schedule)

    create_parser = subparsers.add_parser("create")
    _add_draft_args(create_parser)
    create_parser.add_argument("--asset", action="append", required=True)
    create_parser.add_argument("--tokens")
    create_parser.add_argument("--allowed", action="append", default=[])
    create_parser.add_argument("--adding-assets", choices=("yes", "no"), default="yes")
    create_parser.set_defaults(func=_create)

    countdown_parser = subparsers.add_parser("countdown")
    countdown_parser.add_argument("--target", required=True)
    countdown_parser.add_argument("--now")
    countdown_parser.add_argument("--empty", action="store_true")
    countdown_parser.add_argument("--units", type=int)
    countdown_parser.set_defaults(func=_countdown)

    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        configure_logging(args.log_level or settings.log_level, stream=sys.stderr)
        return args.func(args, settings)
    except (
        ValueError,
        ApprovalSequenceError,
        ApprovalTransactionError,
        ApprovalTransitionError,
        CreationBlockedError,
        CreationFailedError,
    ) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _validate(args: argparse.Namespace, settings: PlannerSettings) -> int:
    draft = CapsuleDraft(
        beneficiary=args.beneficiary,
        period_type=PeriodType(args.type),
        distribution_date=args.date,
        frequency=Frequency(args.frequency),
        period_count=args.periods,
    )
    errors = collect_errors(draft, _parse_instant(args.now))
    print(json.dumps({"valid": not errors, "errors": errors.to_dict()}, indent=2))
    return 1 if errors else 0


def _schedule(args: argparse.Namespace, settings: PlannerSettings) -> int:
    schedule = ScheduleCalculator().build(
        PeriodType(args.type),
        Frequency(args.frequency),
        args.periods,
        args.date,
        _parse_instant(args.now),
    )
    output = {
        "period_type": schedule.period_type.value,
        "frequency": schedule.frequency.value,
        "start_date": schedule.start_date.isoformat(),
        "period_count": schedule.period_count,
        "period_size_seconds": period_size_seconds(schedule.frequency),
        "release_dates": [value.isoformat() for value in release_dates(schedule)],
    }
    print(json.dumps(output, indent=2))
    return 0


def _create(args: argparse.Namespace, settings: PlannerSettings) -> int:
    registry = _build_registry(args.tokens or settings.token_list_path)
    gateway = SimulatedContractGateway(approved_tokens=args.allowed)
    now = _parse_instant(args.now)
    flow = CapsuleCreationFlow(gateway, registry, settings=settings, clock=lambda: now)

    flow.set_period_type(args.type)
    flow.set_frequency(args.frequency)
    flow.set_period_count(args.periods)
    flow.set_distribution_date(args.date)
    flow.set_beneficiary(args.beneficiary)
    flow.set_adding_assets_allowed(args.adding_assets == "yes")

    request = asyncio.run(_run_session(flow, _parse_assets(args.asset)))
    output = {
        "approval_requests": [asdict(item) for item in gateway.approval_requests],
        "approvals": [_record_to_dict(record) for record in flow.approvals],
        "request": _request_to_dict(request),
    }
    print(json.dumps(output, indent=2))
    return 0


def _countdown(args: argparse.Namespace, settings: PlannerSettings) -> int:
    target = _parse_instant(args.target)
    now = _parse_instant(args.now)
    clock = CountdownClock(
        target, clock=lambda: now, max_units=args.units or settings.countdown_units
    )
    reading = clock.tick()
    capsule = Capsule(capsule_id=0, beneficiary="", distribution_date=target, empty=args.empty)
    output = {
        "target": target.isoformat(),
        "now": now.isoformat(),
        "remaining": asdict(reading.remaining),
        "text": reading.text,
        "is_open": reading.is_open,
        "visual": capsule_visual(capsule, now).value,
    }
    print(json.dumps(output, indent=2))
    return 0


async def _run_session(flow: CapsuleCreationFlow, assets: Tuple[Asset, ...]) -> CreationRequest:
    await flow.set_assets(assets)
    while not flow.complete:
        await flow.primary_action()
        if flow.last_error:
            raise ApprovalTransactionError(flow.last_error)
    return flow.created_request


def _add_schedule_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", choices=[item.value for item in PeriodType], required=True)
    parser.add_argument("--date", required=True)
    parser.add_argument(
        "--frequency",
        choices=[item.value for item in Frequency],
        default=Frequency.MONTHLY.value,
    )
    parser.add_argument("--periods", default="")
    parser.add_argument("--now")


def _add_draft_args(parser: argparse.ArgumentParser) -> None:
    _add_schedule_args(parser)
    parser.add_argument("--beneficiary", required=True)


def _build_registry(token_list: Optional[str]) -> TokenRegistry:
    if token_list:
        return FileTokenRegistry(Path(token_list))
    return StaticTokenRegistry()


def _parse_assets(values: Iterable[str]) -> Tuple[Asset, ...]:
    assets = []
    for raw in values:
        if "=" not in raw:
            raise ValueError("Asset must be formatted as TOKEN=AMOUNT.")
        token, amount = raw.split("=", 1)
        if not token:
            raise ValueError("Asset token is required.")
        assets.append(Asset(token=token, amount=amount))
    return tuple(assets)


def _parse_instant(value: Optional[str]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


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


if __name__ == "__main__":
    raise SystemExit(main())
