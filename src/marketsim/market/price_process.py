"""Mean-reverting stochastic price process."""

from __future__ import annotations

import math
import random
from decimal import Decimal

from marketsim.config_loader import MarketLimitsConfig, PriceProcessConfig
from marketsim.market.state import MarketState


def normal_draw(rng: random.Random) -> float:
    """Standard-normal draw via Box-Muller from two uniforms."""
    u = 1.0 - rng.random()  # (0, 1], keeps log() finite
    v = rng.random()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


class PriceProcess:
    """
    Advances one symbol's price per tick.

    The move is a volatility-scaled normal shock plus trend bias, supply
    pressure, mean reversion towards the session open and drift, all scaled
    up when liquidity is thin. Trend bias and drift decay towards zero.
    """

    def __init__(
        self,
        config: PriceProcessConfig | None = None,
        limits: MarketLimitsConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or PriceProcessConfig()
        self.limits = limits or MarketLimitsConfig()
        self.rng = rng or random.Random()

    def draw(self) -> float:
        return normal_draw(self.rng)

    def advance(self, state: MarketState, random_draw: float | None = None) -> MarketState:
        """Apply one tick to ``state`` in place and return it.

        The caller must hold the symbol's lock.
        """
        cfg = self.config
        if random_draw is None:
            random_draw = self.draw()

        supply_pressure = (cfg.reference_supply - state.supply) / cfg.reference_supply * cfg.supply_pressure_k
        mean_reversion = (
            (state.session_open_price - state.price) / state.session_open_price * cfg.mean_reversion_k
        )
        base_move = Decimal(str(random_draw)) * state.volatility
        liquidity_scaler = max(
            cfg.min_liquidity_scaler,
            cfg.liquidity_reference / max(cfg.liquidity_floor, state.liquidity),
        )
        delta = (
            base_move + state.trend_bias + supply_pressure + mean_reversion + state.drift
        ) * liquidity_scaler

        state.price = max(self.limits.price_floor, state.price * (1 + delta))
        state.trend_bias *= cfg.trend_decay
        state.drift *= cfg.drift_decay
        return state
