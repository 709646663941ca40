from typing import Awaitable, Callable, Optional

from models.api_models import AuthRequest
from realtime.packet_processor import PacketContext, PacketProcessor
from realtime.packet_type import PacketType

# (sid, session token) -> user id, binding the socket to the user on success
Authenticator = Callable[[str, str], Awaitable[Optional[str]]]


def register(processor: PacketProcessor, authenticator: Authenticator) -> None:

    @processor.handler(PacketType.AUTH_REQUEST, auth_required=False)
    async def auth_request(context: PacketContext, data: dict):
        packet = AuthRequest.model_validate(data)
        user_id = await authenticator(context.sid, packet.session) if packet.session else None
        await context.reply(PacketType.AUTH_RESPONSE, {
            "loggedIn": user_id is not None,
            # an empty token is a logged-out client, not a bad one
            "valid": not packet.session or user_id is not None,
            "user": user_id,
        })
