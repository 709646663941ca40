from live.game_manager import GameManager
from models.api_models import (
    FactoryBuildRequest,
    FactoryDataRequest,
    FactoryDefenceBuyPacket,
    FactoryDestroyPacket,
    FactoryLevelBuyPacket,
    FactoryTransferPacket,
)
from realtime.packet_processor import PacketContext, PacketProcessor
from realtime.packet_type import PacketType
from services import game_actions


def register(processor: PacketProcessor, manager: GameManager) -> None:

    @processor.handler(PacketType.FACTORY_BUILD_REQUEST)
    async def build_request(context: PacketContext, data: dict):
        packet = FactoryBuildRequest.model_validate(data)
        await game_actions.build_factory(manager, packet.game, context.user_id, packet.name)

    @processor.handler(PacketType.FACTORY_DATA_REQUEST)
    async def data_request(context: PacketContext, data: dict):
        packet = FactoryDataRequest.model_validate(data)
        await game_actions.request_factory_data(manager, packet.factory, context.user_id, context.sid)

    @processor.handler(PacketType.FACTORY_DEPOSIT_IN)
    async def deposit_in(context: PacketContext, data: dict):
        packet = FactoryTransferPacket.model_validate(data)
        await game_actions.deposit_in(manager, packet.factory, context.user_id, packet.amount, packet.all)

    @processor.handler(PacketType.FACTORY_WITHDRAW_OUT)
    async def withdraw_out(context: PacketContext, data: dict):
        packet = FactoryTransferPacket.model_validate(data)
        await game_actions.withdraw_out(manager, packet.factory, context.user_id, packet.amount, packet.all)

    @processor.handler(PacketType.FACTORY_LEVEL_BUY)
    async def level_buy(context: PacketContext, data: dict):
        packet = FactoryLevelBuyPacket.model_validate(data)
        await game_actions.buy_factory_level(manager, packet.factory, context.user_id, packet.cost)

    @processor.handler(PacketType.FACTORY_DEFENCE_BUY)
    async def defence_buy(context: PacketContext, data: dict):
        packet = FactoryDefenceBuyPacket.model_validate(data)
        await game_actions.buy_factory_defence(
            manager, packet.factory, context.user_id, packet.index, packet.cost, packet.defence
        )

    @processor.handler(PacketType.FACTORY_DESTROY)
    async def destroy(context: PacketContext, data: dict):
        packet = FactoryDestroyPacket.model_validate(data)
        await game_actions.destroy_factory(manager, packet.factory, context.user_id, packet.keep_contents)
