"""Runtime settings for the capsule planner."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field


ENV_PREFIX = "CAPSULE_PLANNER_"


class PlannerSettings(BaseModel):
    """Planner defaults; every field can be overridden from the environment."""

    capsule_contract_address: str = Field(
        default="0x0000000000000000000000000000000000c0ffee",
        min_length=42,
        max_length=42,
    )
    unlimited_approval_amount: int = Field(default=9999999999999999999999999999, gt=0)
    countdown_units: int = Field(default=2, ge=1, le=6)
    tick_seconds: float = Field(default=1.0, gt=0)
    valuation_placeholder: str = "----"
    token_list_path: Optional[str] = None
    log_level: str = "INFO"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> PlannerSettings:
    """Build settings from ``CAPSULE_PLANNER_*`` variables over the defaults."""

    source = os.environ if environ is None else environ
    overrides = {}
    for name in PlannerSettings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in source and source[key] != "":
            overrides[name] = source[key]
    return PlannerSettings(**overrides)
