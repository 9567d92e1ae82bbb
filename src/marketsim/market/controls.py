"""Instructor overrides of raw market parameters."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from marketsim.config_loader import MarketLimitsConfig
from marketsim.market.state import MarketState, clamp

logger = logging.getLogger(__name__)


class AdminControls(BaseModel):
    """
    Explicit set of overridable market fields. Absent fields are untouched.

    - volatility: per-tick shock scale, clamped to [volatility_floor, volatility_cap]
    - liquidity: depth proxy, clamped to >= liquidity_floor
    - spread: fractional half-spread baseline, clamped to [spread_floor, spread_cap]
    - fee_bps: fee on notional in basis points, clamped to [fee_bps_floor, fee_bps_cap]
    - halted: blocks new orders while True
    - supply_delta: added to supply, result clamped to >= supply_floor
    """

    model_config = ConfigDict(extra="forbid")

    volatility: Decimal | None = None
    liquidity: Decimal | None = None
    spread: Decimal | None = None
    fee_bps: Decimal | None = Field(default=None, validation_alias=AliasChoices("fee_bps", "feeBps"))
    halted: bool | None = None
    supply_delta: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("supply_delta", "supplyDelta")
    )

    @field_validator("volatility", "liquidity", "spread", "fee_bps", "supply_delta", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal | None:
        if v is None or isinstance(v, Decimal):
            return v
        if isinstance(v, bool):
            raise ValueError("Expected a number, got a boolean")
        try:
            return Decimal(str(v))
        except InvalidOperation:
            raise ValueError(f"Expected a number, got: {v!r}") from None

    @field_validator("volatility", "liquidity", "spread", "fee_bps", "supply_delta")
    @classmethod
    def validate_finite(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and not v.is_finite():
            raise ValueError(f"Expected a finite number, got: {v}")
        return v

    def changed_fields(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value is not None]


def apply_controls(
    state: MarketState, controls: AdminControls, limits: MarketLimitsConfig
) -> MarketState:
    """Clamp and apply each present field. The caller must hold the symbol lock."""
    if controls.volatility is not None:
        state.volatility = clamp(controls.volatility, limits.volatility_floor, limits.volatility_cap)
    if controls.liquidity is not None:
        state.liquidity = clamp(controls.liquidity, limits.liquidity_floor)
    if controls.spread is not None:
        state.spread = clamp(controls.spread, limits.spread_floor, limits.spread_cap)
    if controls.fee_bps is not None:
        state.fee_bps = clamp(controls.fee_bps, limits.fee_bps_floor, limits.fee_bps_cap)
    if controls.halted is not None:
        state.halted = controls.halted
    if controls.supply_delta is not None:
        state.supply = clamp(state.supply + controls.supply_delta, limits.supply_floor)

    logger.info(f"Admin controls applied to {state.symbol}: {controls.changed_fields()}")
    return state
