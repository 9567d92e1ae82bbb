"""MarketSim - classroom market simulation and order-execution engine."""

__version__ = "0.1.0"
