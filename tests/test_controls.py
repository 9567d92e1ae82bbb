"""Tests for instructor admin controls."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from marketsim.config_loader import MarketDefaultsConfig, MarketLimitsConfig, SymbolSeedConfig
from marketsim.market.controls import AdminControls, apply_controls
from marketsim.market.state import MarketState


@pytest.fixture
def state():
    seed = SymbolSeedConfig(symbol="TST", name="Test", price=Decimal("100"))
    return MarketState.from_seed(seed, MarketDefaultsConfig())


@pytest.fixture
def limits():
    return MarketLimitsConfig()


def test_absent_fields_untouched(state, limits):
    before = state.snapshot()
    apply_controls(state, AdminControls(fee_bps=30), limits)
    after = state.snapshot()
    assert after.fee_bps == Decimal("30")
    assert after.volatility == before.volatility
    assert after.liquidity == before.liquidity
    assert after.spread == before.spread
    assert after.supply == before.supply
    assert after.halted is False


def test_values_are_clamped(state, limits):
    controls = AdminControls(volatility=0, liquidity=1, spread=5, fee_bps=-3)
    apply_controls(state, controls, limits)
    assert state.volatility == Decimal("0.0002")
    assert state.liquidity == Decimal("50")
    assert state.spread == Decimal("0.2")
    assert state.fee_bps == Decimal("0")


def test_caps_on_volatility_and_fee(state, limits):
    apply_controls(state, AdminControls(volatility=1, fee_bps=1000), limits)
    assert state.volatility == Decimal("0.05")
    assert state.fee_bps == Decimal("200")


def test_supply_delta_is_added_and_floored(state, limits):
    apply_controls(state, AdminControls(supply_delta=250000), limits)
    assert state.supply == Decimal("1250000")
    apply_controls(state, AdminControls(supply_delta=-10_000_000), limits)
    assert state.supply == Decimal("1")


def test_halt_toggle(state, limits):
    apply_controls(state, AdminControls(halted=True), limits)
    assert state.halted is True
    apply_controls(state, AdminControls(halted=False), limits)
    assert state.halted is False


def test_camel_case_aliases():
    controls = AdminControls.model_validate({"feeBps": 15, "supplyDelta": "-5"})
    assert controls.fee_bps == Decimal("15")
    assert controls.supply_delta == Decimal("-5")
    assert controls.changed_fields() == ["fee_bps", "supply_delta"]


def test_unknown_field_rejected():
    with pytest.raises(ValidationError):
        AdminControls.model_validate({"price": 1})


@pytest.mark.parametrize("bad", [True, "abc", "NaN", "Infinity"])
def test_non_numeric_rejected(bad):
    with pytest.raises(ValidationError):
        AdminControls.model_validate({"volatility": bad})
