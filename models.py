# Models for game elements: factions, buildings, players, regions and effects

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional


class Faction(Enum):
    NOBLES = "Nobles"
    MERCHANTS = "Merchants"
    COMMONERS = "Commoners"


# Slot order is fixed: player index 0, 1, 2
FACTIONS = (Faction.NOBLES, Faction.MERCHANTS, Faction.COMMONERS)

FACTION_BASE_STRENGTH = {
    Faction.NOBLES: 40,
    Faction.MERCHANTS: 15,
    Faction.COMMONERS: 25,
}

REPUBLIC = 'republic'
ORDER = 'order'

CAPITAL = 'pskov'
ORDER_HOME = 'order_lands'

BUILDING_COST = 2
EQUIPMENT_COST = 1
EQUIPMENT_STRENGTH_BONUS = 5
MAX_EQUIPMENT = 2
EQUIPMENT_ITEMS = ('weapons', 'armor')


@dataclass(frozen=True)
class BuildingType:
    """A constructible improvement owned by one faction."""
    key: str
    name: str
    faction: Faction
    max_per_region: int = 1
    capital_only: bool = False


BUILDING_TYPES: Dict[str, BuildingType] = {
    'commoner_huts': BuildingType('commoner_huts', 'Huts', Faction.COMMONERS),
    'commoner_church': BuildingType('commoner_church', 'Village Church', Faction.COMMONERS),
    'noble_manor': BuildingType('noble_manor', 'Manor', Faction.NOBLES),
    'noble_monastery': BuildingType('noble_monastery', 'Monastery', Faction.NOBLES),
    'merchant_mansion': BuildingType('merchant_mansion', 'Mansion', Faction.MERCHANTS,
                                     max_per_region=7, capital_only=True),
    'merchant_church': BuildingType('merchant_church', 'Merchant Church', Faction.MERCHANTS,
                                    max_per_region=7, capital_only=True),
}


def buildings_for_faction(faction: Faction) -> list:
    """Building keys a faction is allowed to construct."""
    return [key for key, b in BUILDING_TYPES.items() if b.faction == faction]


class EffectType(Enum):
    STRENGTH_BONUS = "strength_bonus"
    STRENGTH_PENALTY = "strength_penalty"
    INCOME_PENALTY = "income_penalty"


@dataclass(frozen=True)
class Effect:
    """
    A timed modifier to strength or income.

    Target is 'all' or a faction name. Effects are dropped from the ledger
    once turns_remaining reaches zero.
    """
    type: EffectType
    target: str  # 'all' or a Faction value, e.g. 'Merchants'
    value: float  # Signed: penalties are negative
    turns_remaining: int
    description: str = ''

    def applies_to(self, faction: Faction) -> bool:
        return self.target == 'all' or self.target == faction.value

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'target': self.target,
            'value': self.value,
            'turnsRemaining': self.turns_remaining,
            'description': self.description,
        }


@dataclass(frozen=True)
class Player:
    """
    A player seat bound to one faction.

    Money is fractional because shared costs are split evenly. Improvements
    double as victory points.
    """
    faction: Faction
    money: float = 0.0
    weapons: int = 0  # 0..2
    armor: int = 0  # 0..2
    improvements: int = 0

    def add_money(self, amount: float) -> 'Player':
        """Return a copy with money adjusted, never dropping below 0."""
        return replace(self, money=max(0.0, self.money + amount))

    def lose_improvements(self, count: int) -> 'Player':
        return replace(self, improvements=max(0, self.improvements - count))

    def to_dict(self) -> dict:
        return {
            'faction': self.faction.value,
            'money': self.money,
            'weapons': self.weapons,
            'armor': self.armor,
            'improvements': self.improvements,
        }


def empty_buildings(is_capital: bool = False) -> Dict[str, int]:
    """Zeroed building counts; merchant slots exist only in the capital."""
    return {
        key: 0 for key, b in BUILDING_TYPES.items()
        if is_capital or not b.capital_only
    }


@dataclass(frozen=True)
class Region:
    """A territory held by the Republic or the Order."""
    controller: str  # 'republic' or 'order'
    fortress: bool = False
    buildings: Dict[str, int] = field(default_factory=empty_buildings)

    def building_count(self, building_type: str) -> int:
        return self.buildings.get(building_type, 0)

    def present_buildings(self) -> list:
        """Building keys with at least one unit standing, in table order."""
        return [key for key, count in self.buildings.items() if count > 0]

    def with_building(self, building_type: str, count: int) -> 'Region':
        buildings = dict(self.buildings)
        buildings[building_type] = count
        return replace(self, buildings=buildings)

    def to_dict(self) -> dict:
        return {
            'controller': self.controller,
            'fortress': self.fortress,
            'buildings': dict(self.buildings),
        }


@dataclass(frozen=True)
class ConstructionAction:
    """Per-player construction slots for the current turn."""
    improvement: bool = False
    equipment: bool = False


def owner_faction(building_type: str) -> Optional[Faction]:
    building = BUILDING_TYPES.get(building_type)
    return building.faction if building else None


def format_region_name(region_name: str) -> str:
    if region_name == 'bearhill':
        return 'Bear Hill'
    return region_name.capitalize()
