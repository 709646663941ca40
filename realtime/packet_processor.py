"""
Dispatch of inbound real-time packets.

A client sends `{"type": <PacketType>, "data": {...}}` on the "packet"
event. The processor sanitizes it, finds the handler registered for the
type and turns refusals and failures into MESSAGE_RESPONSE packets so a
bad packet never takes the connection down.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from stores import ActionRejected, InvalidReference, StoreError
from utils.validation import sanitize_json
from .dispatcher import PacketDispatcher, message_payload
from .packet_type import PacketType

logger = logging.getLogger(__name__)

INVALID_PACKET_MESSAGE = "Invalid request, please refresh the page and try again."
NOT_LOGGED_IN_MESSAGE = "You're not logged in."
GENERIC_ERROR_MESSAGE = "Something went wrong, please try again."


@dataclass
class PacketContext:
    """Who sent the packet and how to answer them."""
    sid: str
    user_id: Optional[str]
    dispatcher: PacketDispatcher

    async def reply(self, packet_type: PacketType, payload: dict[str, Any]) -> None:
        await self.dispatcher.send_packet(packet_type, payload, self.sid)

    async def message(self, message: str, *, error: bool = False, dialog: bool = False, toast: bool = False) -> None:
        await self.reply(
            PacketType.MESSAGE_RESPONSE,
            message_payload(message, error=error, dialog=dialog, toast=toast),
        )


Handler = Callable[[PacketContext, dict], Awaitable[Any]]


@dataclass
class RegisteredHandler:
    handler: Handler
    auth_required: bool


class PacketProcessor:
    def __init__(self, dispatcher: PacketDispatcher, user_lookup: Callable[[str], Optional[str]]):
        self.dispatcher = dispatcher
        self.user_lookup = user_lookup
        self.handlers: dict[PacketType, RegisteredHandler] = {}

    def register_handler(self, packet_type: PacketType, handler: Handler, *, auth_required: bool = True) -> None:
        if packet_type in self.handlers:
            raise ValueError(f"Handler for {packet_type.name} already registered")
        self.handlers[packet_type] = RegisteredHandler(handler, auth_required)

    def handler(self, packet_type: PacketType, *, auth_required: bool = True):
        """Decorator form of `register_handler`."""
        def decorator(fn: Handler) -> Handler:
            self.register_handler(packet_type, fn, auth_required=auth_required)
            return fn
        return decorator

    async def process(self, sid: str, raw: Any) -> bool:
        """Handle one packet. Returns True if a handler ran to completion."""
        try:
            packet = sanitize_json(raw)
        except ValueError as e:
            logger.warning(f"Dropping unsanitizable packet from {sid}: {e}")
            await self._error(sid, INVALID_PACKET_MESSAGE)
            return False

        if not isinstance(packet, dict):
            logger.warning(f"Dropping non-object packet from {sid}")
            await self._error(sid, INVALID_PACKET_MESSAGE)
            return False

        try:
            packet_type = PacketType(packet.get("type"))
        except ValueError:
            logger.warning(f"Dropping packet with unknown type {packet.get('type')!r} from {sid}")
            await self._error(sid, INVALID_PACKET_MESSAGE)
            return False

        registered = self.handlers.get(packet_type)
        data = packet.get("data", {})
        if registered is None or not isinstance(data, dict):
            logger.warning(f"Dropping unhandled or malformed {packet_type.name} packet from {sid}")
            await self._error(sid, INVALID_PACKET_MESSAGE)
            return False

        user_id = self.user_lookup(sid)
        if registered.auth_required and user_id is None:
            await self._error(sid, NOT_LOGGED_IN_MESSAGE)
            return False

        context = PacketContext(sid, user_id, self.dispatcher)
        try:
            await registered.handler(context, data)
            return True
        except ValidationError as e:
            logger.warning(f"Malformed {packet_type.name} packet from {sid}: {e.errors()}")
            await self._error(sid, INVALID_PACKET_MESSAGE)
        except ActionRejected as e:
            await context.message(e.message, error=True, dialog=e.dialog, toast=not e.dialog)
        except InvalidReference as e:
            logger.info(f"{packet_type.name} from {sid} referenced something missing: {e}")
            await self._error(sid, INVALID_PACKET_MESSAGE)
        except StoreError as e:
            logger.error(f"Storage failure handling {packet_type.name} from {sid}: {e!r}")
            await self._error(sid, GENERIC_ERROR_MESSAGE)
        except Exception:
            logger.exception(f"Handler for {packet_type.name} failed for {sid}")
            await self._error(sid, GENERIC_ERROR_MESSAGE)
        return False

    async def _error(self, sid: str, message: str) -> None:
        await self.dispatcher.send_packet(
            PacketType.MESSAGE_RESPONSE, message_payload(message, error=True, dialog=True), sid
        )
