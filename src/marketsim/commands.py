"""Inbound command payloads and the router that dispatches them to the service."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from marketsim.constants import OrderSide
from marketsim.errors import InvalidRequest, MarketSimError
from marketsim.market.controls import AdminControls
from marketsim.service import MarketService

logger = logging.getLogger(__name__)


class RoomJoinPayload(BaseModel):
    username: str
    room_code: str | None = Field(
        default=None, validation_alias=AliasChoices("room_code", "roomCode")
    )


class EstimatePayload(BaseModel):
    symbol: str
    side: OrderSide
    qty: Decimal

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("qty", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        if isinstance(v, bool):
            raise ValueError("Expected a number, got a boolean")
        if isinstance(v, Decimal):
            return v
        try:
            return Decimal(str(v))
        except InvalidOperation:
            raise ValueError(f"Expected a number, got: {v!r}") from None


class OrderPayload(EstimatePayload):
    account_id: str = Field(validation_alias=AliasChoices("account_id", "userId"))


class AdminControlPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pin: str
    symbol: str
    controls: AdminControls


class EventTriggerPayload(BaseModel):
    pin: str
    symbol: str
    event_type: str = Field(validation_alias=AliasChoices("event_type", "eventType", "type"))
    room_code: str | None = Field(
        default=None, validation_alias=AliasChoices("room_code", "roomCode")
    )


class BroadcastPayload(BaseModel):
    pin: str
    message: str


class ResetPayload(BaseModel):
    pin: str
    symbol: str


class CommandRouter:
    """
    Validates raw dict payloads and routes them to the MarketService.

    Every handler returns a plain dict: ``{"ok": True, ...}`` on success or
    the error's ``to_dict()`` on a request-level failure.
    """

    def __init__(self, service: MarketService):
        self.service = service
        self._handlers = {
            "room:join": self.join_room,
            "order:submit": self.submit_order,
            "order:estimate": self.estimate,
            "admin:control": self.admin_control,
            "admin:event": self.trigger_event,
            "admin:broadcast": self.broadcast,
            "admin:reset": self.reset_symbol,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, command: str, payload: dict[str, Any] | None) -> dict[str, Any]:
        handler = self._handlers.get(command)
        if handler is None:
            return InvalidRequest(f"Unknown command: {command}").to_dict()
        try:
            return await handler(payload or {})
        except MarketSimError as e:
            logger.info(f"{command} rejected: {e.kind} ({e.message})")
            return e.to_dict()

    @staticmethod
    def _parse(model: type[BaseModel], payload: dict[str, Any]) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise InvalidRequest(f"Invalid payload: {e.error_count()} error(s)") from e

    async def join_room(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(RoomJoinPayload, payload)
        result = await self.service.join_room(p.username, p.room_code)
        return result.to_dict()

    async def submit_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(OrderPayload, payload)
        result = await self.service.submit_order(p.account_id, p.symbol, p.side, p.qty)
        response = result.to_dict()
        response["portfolio"] = self.service.portfolio(p.account_id).to_dict()
        return response

    async def estimate(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(EstimatePayload, payload)
        fill = await self.service.estimate(p.symbol, p.side, p.qty)
        return {"ok": True, **fill.to_dict()}

    async def admin_control(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(AdminControlPayload, payload)
        snap = await self.service.apply_admin_control(p.pin, p.symbol, p.controls)
        return {"ok": True, "market": snap.to_dict()}

    async def trigger_event(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(EventTriggerPayload, payload)
        record = await self.service.trigger_teaching_event(
            p.pin, p.symbol, p.event_type, p.room_code
        )
        return {"ok": True, "event": record.to_dict()}

    async def broadcast(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(BroadcastPayload, payload)
        record = await self.service.broadcast_message(p.pin, p.message)
        return {"ok": True, "event": record.to_dict()}

    async def reset_symbol(self, payload: dict[str, Any]) -> dict[str, Any]:
        p = self._parse(ResetPayload, payload)
        snap = await self.service.reset_symbol(p.pin, p.symbol)
        return {"ok": True, "market": snap.to_dict()}
