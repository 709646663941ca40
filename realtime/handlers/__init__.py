"""Packet handlers, one module per area of the game.

Each module exposes `register(processor, ...)` which installs its handlers
on a `PacketProcessor`.
"""
from . import auth, factory, game, shop


def register_handlers(processor, manager, authenticator) -> None:
    auth.register(processor, authenticator)
    game.register(processor, manager)
    factory.register(processor, manager)
    shop.register(processor, manager)


__all__ = ["register_handlers"]
