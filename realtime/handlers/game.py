from live.game_manager import GameManager
from models.api_models import (
    GameDataRequest,
    GameInfoRequest,
    GameStageChangePacket,
    LocationUpdatePacket,
    PlayerStrengthBuyPacket,
)
from models.coordinate import Coordinate
from realtime.packet_processor import PacketContext, PacketProcessor
from realtime.packet_type import PacketType
from services import game_actions


def register(processor: PacketProcessor, manager: GameManager) -> None:

    @processor.handler(PacketType.LOCATION_UPDATE)
    async def location_update(context: PacketContext, data: dict):
        packet = LocationUpdatePacket.model_validate(data)
        location = Coordinate(packet.location.latitude, packet.location.longitude)
        await game_actions.update_location(manager, packet.game, context.user_id, location)

    @processor.handler(PacketType.GAME_DATA_REQUEST)
    async def game_data_request(context: PacketContext, data: dict):
        packet = GameDataRequest.model_validate(data)
        await game_actions.request_game_data(manager, packet.game, context.user_id, context.sid)

    @processor.handler(PacketType.GAME_INFO_REQUEST)
    async def game_info_request(context: PacketContext, data: dict):
        packet = GameInfoRequest.model_validate(data)
        await game_actions.request_game_info(manager, packet.game, context.user_id, context.sid)

    @processor.handler(PacketType.GAME_STAGE_CHANGE)
    async def stage_change(context: PacketContext, data: dict):
        packet = GameStageChangePacket.model_validate(data)
        await game_actions.change_stage(manager, packet.game, context.user_id, packet.stage)

    @processor.handler(PacketType.PLAYER_STRENGTH_BUY)
    async def strength_buy(context: PacketContext, data: dict):
        packet = PlayerStrengthBuyPacket.model_validate(data)
        await game_actions.buy_strength(
            manager, packet.game, context.user_id, packet.index, packet.cost, packet.strength
        )
