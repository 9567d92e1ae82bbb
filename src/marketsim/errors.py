"""Request-level failures raised by the simulation core.

Every error carries a stable ``kind`` string that the transport layer can
hand back to the client. None of them are fatal to the simulation.
"""

from __future__ import annotations

from typing import Any


class MarketSimError(Exception):
    """Base class for recoverable, request-local failures."""

    kind = "MarketSimError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": self.kind, "message": self.message}


class InvalidQuantity(MarketSimError):
    kind = "InvalidQuantity"


class MarketHalted(MarketSimError):
    kind = "MarketHalted"


class UnknownSymbol(MarketSimError):
    kind = "UnknownSymbol"


class InsufficientCash(MarketSimError):
    kind = "InsufficientCash"


class InsufficientPosition(MarketSimError):
    kind = "InsufficientPosition"


class RateLimited(MarketSimError):
    kind = "RateLimited"


class Unauthorized(MarketSimError):
    kind = "Unauthorized"


class AccountNotFound(MarketSimError):
    kind = "AccountNotFound"


class InvalidRequest(MarketSimError):
    """Malformed or incomplete inbound payload."""

    kind = "InvalidRequest"


class PersistenceFailed(MarketSimError):
    """The durable store rejected a write; nothing was applied."""

    kind = "PersistenceFailed"
