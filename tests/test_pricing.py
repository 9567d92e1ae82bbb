"""Tests for fill pricing and fees."""

from decimal import Decimal

import pytest

from marketsim.config_loader import ExecutionConfig, MarketDefaultsConfig, SymbolSeedConfig
from marketsim.constants import OrderSide
from marketsim.errors import InvalidQuantity
from marketsim.execution.pricing import quote
from marketsim.market.state import MarketState


@pytest.fixture
def market():
    seed = SymbolSeedConfig(symbol="TST", name="Test", price=Decimal("100"))
    return MarketState.from_seed(seed, MarketDefaultsConfig())


def test_buy_above_mid_above_sell(market):
    for qty in (Decimal("0.001"), Decimal("1"), Decimal("500")):
        buy = quote(market, OrderSide.BUY, qty)
        sell = quote(market, OrderSide.SELL, qty)
        assert buy.fill_price > market.price > sell.fill_price


def test_buy_fill_formula(market):
    fill = quote(market, OrderSide.BUY, Decimal("120"))
    # half spread 0.001 + slippage 120/12000*0.02 = 0.0002
    assert fill.fill_price == Decimal("100") * Decimal("1.0012")
    assert fill.fee == fill.fill_price * 120 * Decimal("12") / Decimal("10000")
    assert fill.total_cost == fill.gross + fill.fee


def test_sell_fill_formula(market):
    fill = quote(market, OrderSide.SELL, Decimal("120"))
    assert fill.fill_price == Decimal("100") * Decimal("0.9988")
    assert fill.net_proceeds == fill.gross - fill.fee


def test_slippage_grows_with_size(market):
    small = quote(market, OrderSide.BUY, Decimal("1"))
    large = quote(market, OrderSide.BUY, Decimal("1000"))
    assert large.fill_price > small.fill_price


def test_liquidity_floor_caps_slippage_denominator(market):
    market.liquidity = Decimal("10")
    fill = quote(market, OrderSide.BUY, Decimal("10"), ExecutionConfig())
    # liquidity below the floor prices as if liquidity were 100
    assert fill.fill_price == Decimal("100") * (1 + Decimal("0.001") + Decimal("10") / 100 * Decimal("0.02"))


def test_zero_spread_and_slippage_fills_at_mid(market):
    market.spread = Decimal("0")
    cfg = ExecutionConfig(slippage_coefficient=Decimal("0"))
    assert quote(market, OrderSide.BUY, Decimal("3"), cfg).fill_price == Decimal("100")
    assert quote(market, OrderSide.SELL, Decimal("3"), cfg).fill_price == Decimal("100")


def test_accepts_snapshot(market):
    snap = market.snapshot()
    assert quote(snap, OrderSide.BUY, Decimal("1")) == quote(market, OrderSide.BUY, Decimal("1"))


@pytest.mark.parametrize("qty", [Decimal("0"), Decimal("-1")])
def test_non_positive_quantity_rejected(market, qty):
    with pytest.raises(InvalidQuantity):
        quote(market, OrderSide.BUY, qty)


def test_wire_form(market):
    data = quote(market, "SELL", Decimal("2")).to_dict()
    assert data["side"] == "SELL"
    assert data["midPrice"] == 100.0
    assert data["fillPrice"] < 100.0
