"""Core constants for MarketSim."""

from decimal import Decimal
from enum import Enum


class OrderSide(str, Enum):
    """Order side (buy/sell)."""

    BUY = "BUY"
    SELL = "SELL"


class TeachingEventType(str, Enum):
    """Instructor-triggered market perturbations."""

    PUMP = "PUMP"
    DUMP = "DUMP"
    RUG_PULL = "RUG_PULL"
    FAKE_BREAKOUT = "FAKE_BREAKOUT"
    DILUTION = "DILUTION"
    WHALE_CANDLE = "WHALE_CANDLE"
    FEE_HIKE = "FEE_HIKE"
    SPREAD_WIDEN = "SPREAD_WIDEN"
    TRADING_HALT = "TRADING_HALT"
    WASH_TRADING = "WASH_TRADING"


class LogEventType(str, Enum):
    """Event log entries that are not teaching events."""

    ADMIN_CONTROL = "ADMIN_CONTROL"
    BROADCAST = "BROADCAST"
    SYMBOL_RESET = "SYMBOL_RESET"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================
# Default Values
# ============================================

DEFAULT_ROOM = "PUBLIC"
DEFAULT_STARTING_CASH = Decimal("10000")
DEFAULT_USERNAME_MAX_LEN = 20

DEFAULT_TICK_INTERVAL_SEC = 1.0
DEFAULT_LEADERBOARD_INTERVAL_SEC = 10.0
DEFAULT_LEADERBOARD_TOP_N = 20

DEFAULT_CANDLE_SECONDS = 5
DEFAULT_CANDLE_HISTORY = 200

DEFAULT_RATE_LIMIT_WINDOW_SEC = 2.0
DEFAULT_RATE_LIMIT_MAX_ORDERS = 5

BPS_DIVISOR = Decimal("10000")
ZERO = Decimal("0")

# ============================================
# Application Constants
# ============================================

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
