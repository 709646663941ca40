from live.game_manager import GameManager
from models.api_models import ShopTransactionPacket
from realtime.packet_processor import PacketContext, PacketProcessor
from realtime.packet_type import PacketType
from services import game_actions


def register(processor: PacketProcessor, manager: GameManager) -> None:

    @processor.handler(PacketType.SHOP_SELL_IN)
    async def sell_in(context: PacketContext, data: dict):
        packet = ShopTransactionPacket.model_validate(data)
        await game_actions.shop_sell_in(manager, packet.shop, context.user_id, packet.amount, packet.all)

    @processor.handler(PacketType.SHOP_BUY_OUT)
    async def buy_out(context: PacketContext, data: dict):
        packet = ShopTransactionPacket.model_validate(data)
        await game_actions.shop_buy_out(manager, packet.shop, context.user_id, packet.amount, packet.all)
