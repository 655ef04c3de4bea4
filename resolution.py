import random
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from effects import strength_modifier
from models import (
    BUILDING_TYPES, CAPITAL, EQUIPMENT_STRENGTH_BONUS, FACTION_BASE_STRENGTH,
    ORDER, REPUBLIC, Effect, Player, format_region_name, owner_faction,
)
from state import GameState, load_config

_config = load_config()
FORTRESS_DEFENSE_BONUS = _config['fortress_defense_bonus']
ORDER_BASE_STRENGTH = _config['order_base_strength']

# (minimum strength difference, win chance in percent), checked top-down
VICTORY_TABLE = (
    (20, 95),
    (15, 85),
    (10, 70),
    (5, 60),
    (0, 50),
    (-5, 40),
    (-10, 30),
    (-15, 15),
)
MIN_VICTORY_CHANCE = 5


class CombatError(Exception):
    """Exception raised when a battle targets a region that does not exist."""
    pass


@dataclass(frozen=True)
class BattleRoll:
    success: bool
    roll: float
    chance: int


def player_strength(player: Player, effects: Sequence[Effect]) -> float:
    """Faction base strength plus equipment and active effects, floored at 0."""
    strength = FACTION_BASE_STRENGTH[player.faction]
    strength += player.weapons * EQUIPMENT_STRENGTH_BONUS
    strength += player.armor * EQUIPMENT_STRENGTH_BONUS
    strength += strength_modifier(effects, player.faction)
    return max(0, strength)


def total_strength(players: Sequence[Player], indices: Sequence[int], effects: Sequence[Effect]) -> float:
    return sum(player_strength(players[i], effects) for i in indices)


def victory_chance(strength_diff: float) -> int:
    """Win probability in percent for a given strength difference."""
    for threshold, chance in VICTORY_TABLE:
        if strength_diff >= threshold:
            return chance
    return MIN_VICTORY_CHANCE


def roll_for_victory(strength_diff: float, random_value: Optional[float] = None) -> BattleRoll:
    """
    Roll a battle.

    Args:
        strength_diff: Own strength minus enemy strength
        random_value: Uniform draw in [0, 100); drawn locally when None

    Returns:
        BattleRoll with success true when the draw falls under the chance
    """
    chance = victory_chance(strength_diff)
    roll = random_value if random_value is not None else random.random() * 100
    return BattleRoll(success=roll < chance, roll=roll, chance=chance)


def _require_region(state: GameState, region_name: str) -> None:
    if region_name not in state.regions:
        raise CombatError(f"Unknown region: {region_name}")


def _strip_improvements(players: Tuple[Player, ...], losses: dict) -> Tuple[Player, ...]:
    """Take away improvements per faction according to destroyed buildings."""
    return tuple(
        player.lose_improvements(losses[player.faction]) if losses.get(player.faction) else player
        for player in players
    )


def surrender_region(state: GameState, region_name: str) -> GameState:
    """
    Hand a region to the Order.

    Losing the capital ends the game and changes nothing else. Any other
    region flips to the Order with every building razed; owners lose the
    matching improvements and never get them back.
    """
    _require_region(state, region_name)
    if region_name == CAPITAL:
        return replace(
            state,
            game_over=True,
            game_ended=True,
            last_event_result='GAME OVER: Pskov has fallen to the Teutonic Order!',
        )

    region = state.regions[region_name]
    losses = {}
    for building_type, count in region.buildings.items():
        if count > 0:
            faction = owner_faction(building_type)
            losses[faction] = losses.get(faction, 0) + count

    razed = replace(
        region,
        controller=ORDER,
        buildings={building_type: 0 for building_type in region.buildings},
    )
    new_state = state.with_region(region_name, razed)
    return replace(
        new_state,
        players=_strip_improvements(new_state.players, losses),
        last_event_result=f'{format_region_name(region_name)} surrendered to the Order! All buildings destroyed.',
    )


def execute_battle(state: GameState, attacker_strength: float, target_region: str,
                   defender_indices: Sequence[int], random_value: Optional[float] = None) -> GameState:
    """Defend target_region against the Order; a lost battle surrenders it."""
    _require_region(state, target_region)
    defense = total_strength(state.players, defender_indices, state.active_effects)
    if state.regions[target_region].fortress:
        defense += FORTRESS_DEFENSE_BONUS

    result = roll_for_victory(defense - attacker_strength, random_value)
    name = format_region_name(target_region)
    odds = f'({result.chance}% chance, Strength: {defense:g} vs {attacker_strength:g})'

    if result.success:
        return replace(state, last_event_result=f'VICTORY! {name} successfully defended! {odds}')

    surrendered = surrender_region(state, target_region)
    return replace(
        surrendered,
        last_event_result=f'DEFEAT! {name} lost to the Order! {odds} {surrendered.last_event_result}',
    )


def execute_attack(state: GameState, target_region: str, attacker_indices: Sequence[int],
                   random_value: Optional[float] = None) -> Tuple[GameState, BattleRoll]:
    """Republic attack on an Order-held region; success returns it to the Republic."""
    _require_region(state, target_region)
    order_strength = ORDER_BASE_STRENGTH
    if state.regions[target_region].fortress:
        order_strength += FORTRESS_DEFENSE_BONUS
    attack = total_strength(state.players, attacker_indices, state.active_effects)

    result = roll_for_victory(attack - order_strength, random_value)
    name = format_region_name(target_region)
    odds = f'({result.chance}% chance, Strength: {attack:g} vs {order_strength:g})'

    if result.success:
        region = replace(state.regions[target_region], controller=REPUBLIC)
        new_state = replace(
            state.with_region(target_region, region),
            last_event_result=f'VICTORY! {name} recaptured from the Order! {odds}',
        )
    else:
        new_state = replace(state, last_event_result=f'DEFEAT! Attack on {name} failed! {odds}')
    return new_state, result


def destroy_random_buildings(state: GameState, region_name: str, count: int = 1,
                             picks: Optional[Sequence[float]] = None) -> Tuple[GameState, List[str]]:
    """
    Destroy up to `count` distinct building types in a region.

    Types are chosen uniformly without replacement. Merchant types lose one
    unit, other types are razed; the owning faction loses one improvement per
    destroyed building.

    Args:
        state: Current game state
        region_name: Region to burn
        count: Maximum number of building types to hit
        picks: Uniform [0, 1) draws, one per destruction; drawn locally when short

    Returns:
        (new state, display names of destroyed buildings)
    """
    _require_region(state, region_name)
    picks = list(picks or [])
    region = state.regions[region_name]
    available = region.present_buildings()
    destroyed: List[str] = []
    losses = {}

    for i in range(min(count, len(available))):
        pick = picks[i] if i < len(picks) else random.random()
        building_type = available.pop(min(int(pick * len(available)), len(available) - 1))

        current = region.building_count(building_type)
        building = BUILDING_TYPES[building_type]
        remaining = current - 1 if building.max_per_region > 1 else 0
        region = region.with_building(building_type, max(0, remaining))

        losses[building.faction] = losses.get(building.faction, 0) + 1
        destroyed.append(building.name)

    if not destroyed:
        return state, destroyed

    new_state = state.with_region(region_name, region)
    return replace(new_state, players=_strip_improvements(new_state.players, losses)), destroyed
