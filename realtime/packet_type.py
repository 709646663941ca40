from enum import IntEnum


class PacketType(IntEnum):
    """Numbers of every packet on the real-time channel.

    Inbound packets come from clients, outbound ones from the server.
    """

    # session: token -> AUTH_RESPONSE {loggedIn, valid, user}
    AUTH_REQUEST = 1
    AUTH_RESPONSE = 2
    # {game, stage}
    GAME_STAGE_CHANGE = 3
    # {error, message, dialog, toast}
    MESSAGE_RESPONSE = 4
    # {game, gameName, stage}
    GAME_STAGE_CHANGED = 5
    # 6-9 carried game-wide broadcasts, which this server does not offer;
    # the numbers stay unassigned so the rest keep their client values.

    # {game, location: {latitude, longitude}}
    LOCATION_UPDATE = 10
    # {game, stage, roles: {player, spectator, special, requested}}
    GAME_INFO = 11
    GAME_INFO_REQUEST = 12
    # {game, users: [...], factories: [...]}
    GAME_LOCATIONS_UPDATE = 13
    GAME_DATA_REQUEST = 14
    # {game, data}
    GAME_DATA = 15
    # {game, name}
    FACTORY_BUILD_REQUEST = 16
    FACTORY_BUILD_RESPONSE = 17
    FACTORY_DATA_REQUEST = 18
    # {factory, game, data}
    FACTORY_DATA = 19
    # {factory, index, cost, defence}
    FACTORY_DEFENCE_BUY = 20
    # {factory, amount | all}
    FACTORY_DEPOSIT_IN = 21
    FACTORY_WITHDRAW_OUT = 22
    # {factory, cost}
    FACTORY_LEVEL_BUY = 23
    # {factory, keepContents}
    FACTORY_DESTROY = 24
    # {factory, game}
    FACTORY_DESTROYED = 25
    # {game, index, cost, strength}
    PLAYER_STRENGTH_BUY = 26
    # {shop, amount | all}
    SHOP_SELL_IN = 27
    SHOP_BUY_OUT = 28
