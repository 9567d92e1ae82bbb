"""Order execution: fill pricing and per-account rate limiting."""

from marketsim.execution.pricing import FillQuote, quote
from marketsim.execution.rate_limiter import OrderRateLimiter

__all__ = ["FillQuote", "quote", "OrderRateLimiter"]
