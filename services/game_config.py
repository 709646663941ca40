"""Static game balance table.

Every function here is pure apart from the `random.Random` used for shop
lifetimes and prices, which is injectable so tests can seed it.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

import config


@dataclass(frozen=True)
class Upgrade:
    name: str
    cost: int
    value: int

    def to_dict(self) -> dict:
        return {"name": self.name, "cost": self.cost, "value": self.value}


# (name, minimum level or None, maximum level or None, price multiplier, gain)
STRENGTH_TIERS = (
    ("Pistol", None, None, 1.0, 1),
    ("P90 RUSH B", None, 3, 0.8, 1),
    ("S.W.A.T Gun", 3, None, 2.1, 2),
    ("Body Guard", 6, None, 4.2, 4),
    ("RPG-V2", 8, None, 8.3, 8),
    ("Tank", 10, None, 18.0, 16),
)

DEFENCE_TIERS = (
    ("Mexicans", None, None, 1.0, 1),
    ("Pitbull", 6, None, 2.1, 2),
    ("AK-47", 9, None, 4.2, 4),
    ("Sniper", 13, None, 8.3, 8),
    ("Private Army", 15, None, 18.0, 16),
)


def _upgrades(tiers, current: int, base_price: float, power: float) -> list[Upgrade]:
    offers = []
    for name, minimum, maximum, multiplier, gain in tiers:
        if minimum is not None and current < minimum:
            continue
        if maximum is not None and current > maximum:
            continue
        offers.append(Upgrade(name, round(multiplier * base_price * power ** current), gain))
    return offers


@dataclass
class PlayerConfig:
    initial_money: float = 100
    initial_strength: int = 1
    strength_base_price: float = 35
    strength_power: float = 1.5

    def strength_upgrades(self, strength: int) -> list[Upgrade]:
        return _upgrades(STRENGTH_TIERS, strength, self.strength_base_price, self.strength_power)


@dataclass
class FactoryConfig:
    name: str = "Lab"
    # Detection radius at level 1; the active radius is the tighter one kept
    # once a viewer is already in range.
    range: float = 12.0
    active_range: float = 7.0
    range_per_level: float = 4.0
    initial_level: int = 1
    initial_defence: int = 7
    initial_in: int = 0
    initial_out: int = 0
    production_in_per_level: float = 3
    production_out_factor: float = 1
    production_out_power: float = 1.3
    build_cost_base: float = 400
    build_cost_growth: float = 1.45
    level_cost_base: float = 250
    level_cost_factor: float = 500
    level_cost_power: float = 1.5
    defence_base_price: float = 100
    defence_power: float = 1.2

    def _level_bonus(self, level: int) -> float:
        return max(level - 1, 0) ** 0.3 * self.range_per_level

    def get_range(self, level: int) -> float:
        return self.range + self._level_bonus(level)

    def get_active_range(self, level: int) -> float:
        return min(self.active_range, self.range) + self._level_bonus(level)

    def production_in(self, level: int) -> int:
        return round(level * self.production_in_per_level)

    def production_out(self, level: int) -> int:
        return round(self.production_out_factor * level ** self.production_out_power)

    def level_cost(self, level: int) -> int:
        return round(self.level_cost_base + self.level_cost_factor * max(level - 1, 0) ** self.level_cost_power)

    def build_cost(self, ally_count: int, enemy_average: float, initial_money: float) -> int:
        """Price of the team's next factory given how many it and its enemies own."""
        if ally_count <= 0:
            return 0
        if ally_count == 1:
            return round(initial_money)
        exponent = ally_count + (ally_count - enemy_average) / 4
        return round(self.build_cost_base * self.build_cost_growth ** exponent)

    def defence_upgrades(self, defence: int) -> list[Upgrade]:
        return _upgrades(DEFENCE_TIERS, defence, self.defence_base_price, self.defence_power)


@dataclass
class ShopConfig:
    range: float = 15.0
    lifetime_min: float = 8 * 60
    lifetime_max: float = 12 * 60
    alert_time: float = 45
    players_per_shop: int = 15
    in_sell_price_min: float = 5.0
    in_sell_price_max: float = 8.0
    out_buy_price_min: float = 10.0
    out_buy_price_max: float = 14.0

    def shops_for_players(self, active_players: int) -> int:
        if active_players <= 0:
            return 0
        return math.ceil(active_players / self.players_per_shop)

    def random_lifetime(self, rng: random.Random) -> float:
        return rng.uniform(self.lifetime_min, self.lifetime_max)

    def random_in_sell_price(self, rng: random.Random) -> float:
        return round(rng.uniform(self.in_sell_price_min, self.in_sell_price_max), 1)

    def random_out_buy_price(self, rng: random.Random) -> float:
        return round(rng.uniform(self.out_buy_price_min, self.out_buy_price_max), 1)


@dataclass
class GameConfig:
    player: PlayerConfig = field(default_factory=PlayerConfig)
    factory: FactoryConfig = field(default_factory=FactoryConfig)
    shop: ShopConfig = field(default_factory=ShopConfig)
    tick_interval: float = config.TICK_INTERVAL_SECONDS
    location_update_interval: float = config.LOCATION_UPDATE_INTERVAL_SECONDS
    location_freshness: float = config.LOCATION_FRESHNESS_SECONDS
    shop_worker_interval: float = config.SHOP_WORKER_INTERVAL_SECONDS
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def production_in(self, level: int) -> int:
        return self.factory.production_in(level)

    def production_out(self, level: int) -> int:
        return self.factory.production_out(level)

    def level_cost(self, level: int) -> int:
        return self.factory.level_cost(level)

    def defence_upgrades(self, defence: int) -> list[Upgrade]:
        return self.factory.defence_upgrades(defence)

    def strength_upgrades(self, strength: int) -> list[Upgrade]:
        return self.player.strength_upgrades(strength)


def default_config_for_game(game_id: str) -> GameConfig:
    """Return the balance table for a game; every game uses the defaults today."""
    return GameConfig()
