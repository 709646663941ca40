"""
Socket.IO transport for the live engine.

`RealTime` owns the `socketio.AsyncServer`, keeps the socket <-> user
mapping and implements the `PacketDispatcher` contract the live engine
pushes through. Every packet travels on the single "packet" event as
`{"type": int, "data": {...}}`.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import socketio

import config
from infrastructure.redis import SessionLookup
from .dispatcher import Sids
from .packet_processor import PacketProcessor
from .packet_type import PacketType

logger = logging.getLogger(__name__)

PACKET_EVENT = "packet"


class RealTime:
    def __init__(self, sessions: Optional[SessionLookup], *, cors_origins=None):
        self.sessions = sessions
        self.sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=config.CORS_ORIGINS if cors_origins is None else cors_origins,
        )
        self.processor = PacketProcessor(self, self.get_user_id)
        self._sid_user: dict[str, str] = {}
        self._user_sids: dict[str, set[str]] = {}

        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on(PACKET_EVENT, self.on_packet)

    def asgi_app(self, other_asgi_app) -> socketio.ASGIApp:
        """Wrap the HTTP app so Socket.IO traffic is served from the same process."""
        return socketio.ASGIApp(self.sio, other_asgi_app=other_asgi_app, socketio_path=config.SOCKETIO_PATH)

    # -------------------------------------------------
    # Connections
    # -------------------------------------------------

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> bool:
        token = auth.get("session") if isinstance(auth, dict) else None
        if token:
            await self.authenticate(sid, token)
        return True

    async def on_disconnect(self, sid: str, *args) -> None:
        self.unbind(sid)

    async def on_packet(self, sid: str, data: Any) -> None:
        await self.processor.process(sid, data)

    async def authenticate(self, sid: str, token: str) -> Optional[str]:
        """Resolve a session token and bind the socket to its user."""
        if self.sessions is None or not token:
            return None
        user_id = await self.sessions.get_user_id(token)
        if user_id is None:
            logger.info(f"Socket {sid} presented an unknown session")
            return None
        self.bind(sid, user_id)
        return user_id

    def bind(self, sid: str, user_id: str) -> None:
        self.unbind(sid)
        self._sid_user[sid] = user_id
        self._user_sids.setdefault(user_id, set()).add(sid)
        logger.debug(f"Socket {sid} bound to user {user_id}")

    def unbind(self, sid: str) -> None:
        user_id = self._sid_user.pop(sid, None)
        if user_id is None:
            return
        sids = self._user_sids.get(user_id)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self._user_sids[user_id]

    def get_user_id(self, sid: str) -> Optional[str]:
        return self._sid_user.get(sid)

    # -------------------------------------------------
    # PacketDispatcher
    # -------------------------------------------------

    def is_user_connected(self, user_id: str) -> bool:
        return bool(self._user_sids.get(user_id))

    def get_user_sids(self, user_id: str) -> list[str]:
        return sorted(self._user_sids.get(user_id, ()))

    async def send_packet(self, packet_type: PacketType, payload: dict[str, Any], sids: Sids) -> None:
        if sids is None:
            return
        targets = [sids] if isinstance(sids, str) else list(sids)
        message = {"type": int(packet_type), "data": payload}
        for sid in targets:
            await self.sio.emit(PACKET_EVENT, message, to=sid)

    async def send_packet_user(self, packet_type: PacketType, payload: dict[str, Any], user_id: str) -> None:
        await self.send_packet(packet_type, payload, self.get_user_sids(user_id))
