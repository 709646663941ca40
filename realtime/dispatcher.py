from typing import Any, Iterable, Optional, Protocol, Union

from .packet_type import PacketType

Sids = Union[str, Iterable[str], None]


class PacketDispatcher(Protocol):
    """What the live engine needs from the real-time transport."""

    async def send_packet(self, packet_type: PacketType, payload: dict[str, Any], sids: Sids) -> None:
        """Send to one socket id or a collection of them."""

    async def send_packet_user(self, packet_type: PacketType, payload: dict[str, Any], user_id: str) -> None:
        """Send to every socket the user currently has open."""

    def is_user_connected(self, user_id: str) -> bool:
        ...

    def get_user_sids(self, user_id: str) -> list[str]:
        ...


def message_payload(message: str, *, error: bool = False, dialog: bool = False, toast: bool = False,
                    title: Optional[str] = None) -> dict[str, Any]:
    """Build a MESSAGE_RESPONSE body."""
    payload: dict[str, Any] = {"error": error, "message": message, "dialog": dialog, "toast": toast}
    if title:
        payload["title"] = title
    return payload
