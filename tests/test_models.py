import pytest
from dataclasses import FrozenInstanceError

from models import (
    BUILDING_TYPES, FACTION_BASE_STRENGTH, FACTIONS, Effect, EffectType, Faction,
    Player, Region, buildings_for_faction, empty_buildings, format_region_name, owner_faction,
)


def test_faction_slot_order():
    """Slots 0, 1, 2 are Nobles, Merchants, Commoners."""
    assert FACTIONS == (Faction.NOBLES, Faction.MERCHANTS, Faction.COMMONERS)


def test_base_strengths():
    assert FACTION_BASE_STRENGTH[Faction.NOBLES] == 40
    assert FACTION_BASE_STRENGTH[Faction.MERCHANTS] == 15
    assert FACTION_BASE_STRENGTH[Faction.COMMONERS] == 25


def test_buildings_for_faction():
    assert buildings_for_faction(Faction.NOBLES) == ['noble_manor', 'noble_monastery']
    assert buildings_for_faction(Faction.MERCHANTS) == ['merchant_mansion', 'merchant_church']
    assert buildings_for_faction(Faction.COMMONERS) == ['commoner_huts', 'commoner_church']


def test_merchant_buildings_are_capital_only():
    for key in ('merchant_mansion', 'merchant_church'):
        assert BUILDING_TYPES[key].capital_only
        assert BUILDING_TYPES[key].max_per_region == 7
    assert BUILDING_TYPES['noble_manor'].max_per_region == 1


def test_empty_buildings_capital_has_merchant_slots():
    assert 'merchant_mansion' in empty_buildings(is_capital=True)
    assert 'merchant_mansion' not in empty_buildings()
    assert all(count == 0 for count in empty_buildings(True).values())


def test_player_add_money_clamps_at_zero():
    player = Player(faction=Faction.NOBLES, money=1.5)
    assert player.add_money(-2).money == 0.0
    assert player.add_money(1).money == 2.5
    # Original untouched
    assert player.money == 1.5


def test_player_is_frozen():
    player = Player(faction=Faction.NOBLES)
    with pytest.raises(FrozenInstanceError):
        player.money = 10


def test_lose_improvements_never_negative():
    player = Player(faction=Faction.COMMONERS, improvements=1)
    assert player.lose_improvements(3).improvements == 0


def test_region_with_building_copies():
    region = Region(controller='republic')
    built = region.with_building('noble_manor', 1)
    assert built.building_count('noble_manor') == 1
    assert region.building_count('noble_manor') == 0
    assert built.present_buildings() == ['noble_manor']


def test_effect_applies_to():
    everyone = Effect(EffectType.STRENGTH_BONUS, 'all', 5, 3)
    merchants = Effect(EffectType.STRENGTH_PENALTY, 'Merchants', -10, 3)
    assert everyone.applies_to(Faction.NOBLES)
    assert merchants.applies_to(Faction.MERCHANTS)
    assert not merchants.applies_to(Faction.COMMONERS)


def test_effect_to_dict_uses_wire_keys():
    data = Effect(EffectType.INCOME_PENALTY, 'all', -0.5, 5, 'Embassy refusal').to_dict()
    assert data == {
        'type': 'income_penalty',
        'target': 'all',
        'value': -0.5,
        'turnsRemaining': 5,
        'description': 'Embassy refusal',
    }


def test_owner_faction():
    assert owner_faction('commoner_huts') == Faction.COMMONERS
    assert owner_faction('castle') is None


def test_format_region_name():
    assert format_region_name('bearhill') == 'Bear Hill'
    assert format_region_name('pskov') == 'Pskov'
