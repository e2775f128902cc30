"""Translate capsule drafts and approvals into Ethereum request payloads."""

from decimal import Decimal
from typing import Dict, Sequence, Tuple

from capsule_engine.models import NATIVE_TOKEN, Asset, CapsuleDraft, DistributionSchedule, Token
from capsule_engine.schedule import period_size_seconds, validate_schedule
from capsule_engine.validation import validate_address
from token_registry.registry import TokenRegistry

from .models import ApprovalRequest, AssetAmount, CreationRequest


class AdapterError(ValueError):
    """Raised when a draft cannot be adapted to contract requests."""


def build_approval_request(token_address: str, spender: str, amount: int) -> ApprovalRequest:
    if not token_address:
        raise AdapterError("Approval requires a token address.")
    if amount <= 0:
        raise AdapterError("Approval amount must be positive.")
    return ApprovalRequest(token_address=token_address, spender=spender, amount=amount)


def draft_to_creation_request(
    draft: CapsuleDraft,
    schedule: DistributionSchedule,
    registry: TokenRegistry,
) -> CreationRequest:
    validate_schedule(schedule)
    beneficiary = validate_address(draft.beneficiary)

    amounts = _merge_assets(draft.assets, registry)
    value_wei = sum(item.base_units for item in amounts if item.token == NATIVE_TOKEN)

    return CreationRequest(
        beneficiary=beneficiary,
        start_timestamp=int(schedule.start_date.timestamp()),
        period_size=period_size_seconds(schedule.frequency),
        period_count=schedule.period_count,
        assets=amounts,
        adding_assets_allowed=draft.adding_assets_allowed,
        value_wei=value_wei,
    )


def to_base_units(amount: Decimal, token: Token) -> int:
    scaled = amount.scaleb(token.decimals)
    if scaled != scaled.to_integral_value():
        raise AdapterError(
            f"{token.symbol} supports at most {token.decimals} decimal places."
        )
    return int(scaled)


def _merge_assets(assets: Sequence[Asset], registry: TokenRegistry) -> Tuple[AssetAmount, ...]:
    totals: Dict[str, int] = {}
    for asset in assets:
        token = registry.lookup(asset.token)
        if token is None:
            raise AdapterError(f"Unknown token: {asset.token}")
        totals[asset.token] = totals.get(asset.token, 0) + to_base_units(
            asset.decimal_amount(), token
        )
    return tuple(AssetAmount(token=key, base_units=value) for key, value in totals.items())
