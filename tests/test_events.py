"""Tests for the teaching event engine."""

import random
from datetime import datetime
from decimal import Decimal

import pytest

from marketsim.config_loader import (
    MarketDefaultsConfig,
    MarketLimitsConfig,
    SymbolSeedConfig,
    TeachingEventConfig,
)
from marketsim.constants import TeachingEventType
from marketsim.errors import InvalidRequest, UnknownSymbol
from marketsim.market.events import TeachingEventEngine, parse_event_type
from marketsim.market.state import MarketRegistry


@pytest.fixture
def registry():
    seeds = [
        SymbolSeedConfig(symbol="BTC", name="Bitcoin", price=Decimal("60000")),
        SymbolSeedConfig(symbol="DOGE", name="Dogecoin", price=Decimal("0.15")),
    ]
    return MarketRegistry(seeds, MarketDefaultsConfig(), MarketLimitsConfig())


@pytest.fixture
def engine(registry):
    return TeachingEventEngine(registry, TeachingEventConfig(), rng=random.Random(3))


def state_of(registry, symbol):
    return registry.get(symbol).state


@pytest.mark.asyncio
async def test_pump_and_dump_shift_trend(engine, registry):
    await engine.apply("BTC", "PUMP")
    assert state_of(registry, "BTC").trend_bias == Decimal("0.003")
    await engine.apply("BTC", "DUMP")
    assert state_of(registry, "BTC").trend_bias == Decimal("0")


@pytest.mark.asyncio
async def test_rug_pull(engine, registry):
    await engine.apply("BTC", TeachingEventType.RUG_PULL)
    state = state_of(registry, "BTC")
    assert state.liquidity <= Decimal("600")
    assert state.spread >= Decimal("0.032")
    assert state.trend_bias == Decimal("-0.005")


@pytest.mark.asyncio
async def test_rug_pull_respects_liquidity_floor(engine, registry):
    state_of(registry, "BTC").liquidity = Decimal("100")
    await engine.apply("BTC", "RUG_PULL")
    assert state_of(registry, "BTC").liquidity == Decimal("50")


@pytest.mark.asyncio
async def test_dilution(engine, registry):
    await engine.apply("DOGE", "DILUTION")
    state = state_of(registry, "DOGE")
    assert state.supply == Decimal("1400000")
    assert state.drift == Decimal("-0.002")


@pytest.mark.asyncio
async def test_whale_candle_moves_price_eight_percent(engine, registry):
    await engine.apply("BTC", "WHALE_CANDLE")
    price = state_of(registry, "BTC").price
    assert price in (Decimal("60000") * Decimal("1.08"), Decimal("60000") * Decimal("0.92"))


@pytest.mark.asyncio
async def test_fee_hike_and_spread_widen(engine, registry):
    await engine.apply("BTC", "FEE_HIKE")
    await engine.apply("BTC", "SPREAD_WIDEN")
    state = state_of(registry, "BTC")
    assert state.fee_bps == Decimal("37")
    assert state.spread == Decimal("0.012")


@pytest.mark.asyncio
async def test_spread_widen_is_capped(engine, registry):
    for _ in range(20):
        await engine.apply("BTC", "SPREAD_WIDEN")
    assert state_of(registry, "BTC").spread == Decimal("0.1")


@pytest.mark.asyncio
async def test_spread_widen_never_narrows(engine, registry):
    state_of(registry, "BTC").spread = Decimal("0.15")
    await engine.apply("BTC", "SPREAD_WIDEN")
    assert state_of(registry, "BTC").spread == Decimal("0.15")


@pytest.mark.asyncio
async def test_trading_halt_toggles(engine, registry):
    await engine.apply("BTC", "TRADING_HALT")
    assert state_of(registry, "BTC").halted is True
    await engine.apply("BTC", "TRADING_HALT")
    assert state_of(registry, "BTC").halted is False


@pytest.mark.asyncio
async def test_fake_breakout_reverses_net_negative(engine, registry):
    state = state_of(registry, "BTC")
    await engine.apply("BTC", "FAKE_BREAKOUT", now=100.0)
    assert state.trend_bias == Decimal("0.004")
    assert engine.pending("BTC") == 1

    assert engine.run_due(state, 114.9) == []
    assert engine.pending("BTC") == 1

    assert engine.run_due(state, 115.0) == [TeachingEventType.FAKE_BREAKOUT]
    assert engine.pending("BTC") == 0
    assert state.trend_bias == Decimal("-0.003")


@pytest.mark.asyncio
async def test_wash_trading_fades(engine, registry):
    state = state_of(registry, "BTC")
    await engine.apply("BTC", "WASH_TRADING", now=0.0)
    assert state.volatility == Decimal("0.0035")
    assert abs(state.trend_bias) == Decimal("0.001")

    engine.run_due(state, 20.0)

    assert state.volatility == Decimal("0.002")


@pytest.mark.asyncio
async def test_wash_trading_fade_respects_floor(engine, registry):
    state = state_of(registry, "BTC")
    await engine.apply("BTC", "WASH_TRADING", now=0.0)
    state.volatility = Decimal("0.0012")
    engine.run_due(state, 25.0)
    assert state.volatility == Decimal("0.001")


@pytest.mark.asyncio
async def test_reversals_fire_in_due_order_per_symbol(engine, registry):
    btc = state_of(registry, "BTC")
    doge = state_of(registry, "DOGE")
    await engine.apply("BTC", "WASH_TRADING", now=0.0)
    await engine.apply("BTC", "FAKE_BREAKOUT", now=1.0)
    await engine.apply("DOGE", "FAKE_BREAKOUT", now=1.0)

    assert engine.run_due(btc, 30.0) == [
        TeachingEventType.FAKE_BREAKOUT,
        TeachingEventType.WASH_TRADING,
    ]
    assert engine.pending("BTC") == 0
    assert engine.pending("DOGE") == 1
    assert doge.trend_bias == Decimal("0.004")


@pytest.mark.asyncio
async def test_cancel_pending_drops_reversal(engine, registry):
    state = state_of(registry, "BTC")
    await engine.apply("BTC", "FAKE_BREAKOUT", now=0.0)
    assert engine.cancel_pending("BTC") == 1

    assert engine.run_due(state, 60.0) == []
    assert state.trend_bias == Decimal("0.004")
    assert engine.pending("BTC") == 0


@pytest.mark.asyncio
async def test_shutdown_cancels_everything(engine):
    await engine.apply("BTC", "FAKE_BREAKOUT")
    await engine.apply("DOGE", "WASH_TRADING")
    engine.shutdown()
    assert engine.pending("BTC") == 0
    assert engine.pending("DOGE") == 0


@pytest.mark.asyncio
async def test_record_uses_event_time(engine):
    record = await engine.apply("BTC", "PUMP", now=1_700_000_000.0)
    assert record.timestamp == datetime.fromtimestamp(1_700_000_000.0)


@pytest.mark.asyncio
async def test_record(engine):
    record = await engine.apply("btc", "pump", room_code="CLASS1")
    assert record.event_type == "PUMP"
    assert record.symbol == "BTC"
    assert record.room_code == "CLASS1"
    assert record.message == "Event PUMP on BTC"


@pytest.mark.asyncio
async def test_unknown_event_and_symbol(engine):
    with pytest.raises(InvalidRequest):
        await engine.apply("BTC", "MOON")
    with pytest.raises(UnknownSymbol):
        await engine.apply("XRP", "PUMP")


def test_parse_event_type():
    assert parse_event_type("rug_pull") == TeachingEventType.RUG_PULL
    assert parse_event_type(TeachingEventType.DUMP) == TeachingEventType.DUMP
