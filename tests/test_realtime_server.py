"""
Tests for the Socket.IO transport's session mapping and dispatch.
"""

import pytest

from realtime.packet_type import PacketType
from realtime.server import PACKET_EVENT, RealTime


class FakeSessions:
    def __init__(self, tokens):
        self.tokens = tokens

    async def get_user_id(self, token):
        return self.tokens.get(token)


@pytest.fixture
def realtime():
    realtime = RealTime(FakeSessions({"token-a": "alice"}), cors_origins=[])
    emitted = []

    async def emit(event, data, to=None):
        emitted.append((event, data, to))

    realtime.sio.emit = emit
    realtime.emitted = emitted
    return realtime


async def test_connect_with_session_binds_user(realtime):
    assert await realtime.on_connect("sid-1", {}, {"session": "token-a"})
    assert realtime.get_user_id("sid-1") == "alice"
    assert realtime.is_user_connected("alice")

    await realtime.on_connect("sid-2", {}, {"session": "bogus"})
    assert realtime.get_user_id("sid-2") is None


async def test_disconnect_unbinds(realtime):
    realtime.bind("sid-1", "alice")
    realtime.bind("sid-2", "alice")
    assert realtime.get_user_sids("alice") == ["sid-1", "sid-2"]

    await realtime.on_disconnect("sid-1")
    assert realtime.get_user_sids("alice") == ["sid-2"]
    await realtime.on_disconnect("sid-2")
    assert not realtime.is_user_connected("alice")


async def test_rebinding_a_socket_moves_it(realtime):
    realtime.bind("sid-1", "alice")
    realtime.bind("sid-1", "bob")
    assert not realtime.is_user_connected("alice")
    assert realtime.get_user_sids("bob") == ["sid-1"]


async def test_send_packet_user_reaches_every_socket(realtime):
    realtime.bind("sid-1", "alice")
    realtime.bind("sid-2", "alice")

    await realtime.send_packet_user(PacketType.GAME_DATA, {"game": "g1"}, "alice")
    await realtime.send_packet_user(PacketType.GAME_DATA, {"game": "g1"}, "nobody")

    assert realtime.emitted == [
        (PACKET_EVENT, {"type": 15, "data": {"game": "g1"}}, "sid-1"),
        (PACKET_EVENT, {"type": 15, "data": {"game": "g1"}}, "sid-2"),
    ]


async def test_send_packet_to_single_sid(realtime):
    await realtime.send_packet(PacketType.MESSAGE_RESPONSE, {"message": "hi"}, "sid-9")
    await realtime.send_packet(PacketType.MESSAGE_RESPONSE, {"message": "hi"}, None)

    assert realtime.emitted == [(PACKET_EVENT, {"type": 4, "data": {"message": "hi"}}, "sid-9")]


async def test_packets_go_through_the_processor(realtime):
    await realtime.on_packet("sid-1", {"type": 999})

    event, data, to = realtime.emitted[-1]
    assert to == "sid-1"
    assert data["type"] == PacketType.MESSAGE_RESPONSE
    assert data["data"]["error"] is True
