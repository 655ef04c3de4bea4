"""
Phase machine for "Veche: Republic vs. Order"
Handles the phase cycle, income, construction and the veche funding rounds.

Phase cycle:
- resources: income is paid when the phase is left
- construction: players take turns building and buying equipment
- events: an event card is drawn on entry and must be resolved before leaving
- veche: the council may fund an attack on the Order or a new fortress

Wrapping veche -> resources ages active effects and advances the turn; past
the turn horizon the game ends. Rules are checked in actions.py; the functions
here assume a validated request.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional

from effects import decay, income_modifier
from events import draw_event, split_cost
from models import (
    BUILDING_COST, CAPITAL, EQUIPMENT_COST,
    ConstructionAction, Player, format_region_name,
)
from regions import count_republic_regions
from resolution import execute_attack
from rolls import RandomValues
from state import EMPTY_VOTES, PHASES, PLAYER_COUNT, GameState, load_config

_config = load_config()
MAX_TURNS = _config['max_turns']
DEBUG_EVENTS = _config['debug_events']
FUNDING_COSTS = {
    'attack': _config['attack_cost_total'],
    'fortress': _config['fortress_cost_total'],
}

BASE_INCOME = 0.5
INCOME_PER_REGION = 0.25
INCOME_PER_IMPROVEMENT = 0.25


def calculate_income(player: Player, game_state: GameState) -> float:
    """
    Income a player collects when the resources phase ends.

    Args:
        player: Player to pay
        game_state: Current game state

    Returns:
        (0.5 + 0.25 per Republic region + 0.25 per improvement) scaled by any
        active income penalties
    """
    base = (BASE_INCOME
            + INCOME_PER_REGION * count_republic_regions(game_state.regions)
            + INCOME_PER_IMPROVEMENT * player.improvements)
    return base * income_modifier(game_state.active_effects, player.faction)


def collect_income(game_state: GameState) -> GameState:
    players = tuple(
        replace(player, money=player.money + calculate_income(player, game_state))
        for player in game_state.players
    )
    return replace(game_state, players=players)


def _clear_event(game_state: GameState) -> GameState:
    return replace(
        game_state,
        current_event=None,
        event_votes=EMPTY_VOTES,
        event_resolved=False,
        last_event_result=None,
        event_image_revealed=False,
    )


def _clear_funding(game_state: GameState) -> GameState:
    return replace(
        game_state,
        attack_planning=None,
        attack_target=None,
        attack_votes=EMPTY_VOTES,
        fortress_planning=None,
        fortress_target=None,
        fortress_votes=EMPTY_VOTES,
    )


def _enter_construction(game_state: GameState) -> GameState:
    first = game_state.active_slots()[0] if game_state.active_slots() else 0
    return replace(
        game_state,
        current_player=first,
        selected_region=CAPITAL,
        construction_actions=tuple(ConstructionAction() for _ in range(PLAYER_COUNT)),
    )


def _enter_events(game_state: GameState, rolls: RandomValues, debug: bool) -> GameState:
    event, debug_index = draw_event(rolls, debug, game_state.debug_event_index)
    return replace(
        game_state,
        current_event=event,
        event_votes=EMPTY_VOTES,
        event_resolved=False,
        last_event_result=None,
        event_image_revealed=False,
        debug_event_index=debug_index,
    )


def next_phase(game_state: GameState, rolls: Optional[RandomValues] = None,
               debug: Optional[bool] = None) -> GameState:
    """
    Move to the next phase of the cycle.

    Args:
        game_state: Current game state
        rolls: Session draws used by the event card draw
        debug: Draw events in deck order; defaults to the configured value

    Returns:
        New game state; an ended game is returned unchanged
    """
    if game_state.game_ended:
        return game_state
    rolls = rolls or RandomValues()
    debug = DEBUG_EVENTS if debug is None else debug

    leaving = game_state.phase
    if leaving == 'resources':
        game_state = collect_income(game_state)
    elif leaving == 'events':
        game_state = _clear_event(game_state)
    elif leaving == 'veche':
        game_state = _clear_funding(decay(game_state))
        turn = game_state.turn + 1
        return replace(game_state, turn=turn, phase='resources', game_ended=turn > MAX_TURNS)

    entering = PHASES[PHASES.index(leaving) + 1]
    game_state = replace(game_state, phase=entering)
    if entering == 'construction':
        game_state = _enter_construction(game_state)
    elif entering == 'events':
        game_state = _enter_events(game_state, rolls, debug)
    return game_state


def advance(game_state: GameState, rolls: Optional[RandomValues] = None,
            debug: Optional[bool] = None) -> GameState:
    """Advance one phase, passing straight through resources since it has no choices."""
    game_state = next_phase(game_state, rolls, debug)
    if game_state.phase == 'resources' and not game_state.game_ended:
        game_state = next_phase(game_state, rolls, debug)
    return game_state


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def _mark_construction(game_state: GameState, player_index: int, **flags) -> GameState:
    actions = list(game_state.construction_actions)
    actions[player_index] = replace(actions[player_index], **flags)
    return replace(game_state, construction_actions=tuple(actions))


def build_building(game_state: GameState, player_index: int, building_type: str) -> GameState:
    """Build in the selected region: -2 money, +1 improvement, one per turn."""
    player = game_state.players[player_index]
    region_name = game_state.selected_region
    region = game_state.regions[region_name]
    game_state = game_state.with_region(
        region_name, region.with_building(building_type, region.building_count(building_type) + 1))
    game_state = game_state.with_player(
        player_index,
        replace(player, money=player.money - BUILDING_COST, improvements=player.improvements + 1),
    )
    return _mark_construction(game_state, player_index, improvement=True)


def buy_equipment(game_state: GameState, player_index: int, item: str) -> GameState:
    """Buy one weapons or armor level for 1 money, one purchase per turn."""
    player = game_state.players[player_index]
    player = replace(player, money=player.money - EQUIPMENT_COST, **{item: getattr(player, item) + 1})
    game_state = game_state.with_player(player_index, player)
    return _mark_construction(game_state, player_index, equipment=True)


def select_region(game_state: GameState, region_name: str) -> GameState:
    return replace(game_state, selected_region=region_name)


def next_player(game_state: GameState) -> GameState:
    """Pass construction to the next seat (0 -> 1 -> 2 -> 0), skipping forfeited seats."""
    index = game_state.current_player
    for _ in range(PLAYER_COUNT):
        index = (index + 1) % PLAYER_COUNT
        if not game_state.forfeited[index]:
            break
    return replace(game_state, current_player=index, selected_region=CAPITAL)


# ---------------------------------------------------------------------------
# Veche funding rounds
# ---------------------------------------------------------------------------


def funding_round(game_state: GameState, kind: str) -> Dict[str, Any]:
    """Planning status, target and votes of the 'attack' or 'fortress' round."""
    return {
        'planning': getattr(game_state, f'{kind}_planning'),
        'target': getattr(game_state, f'{kind}_target'),
        'votes': getattr(game_state, f'{kind}_votes'),
    }


def initiate_funding(game_state: GameState, kind: str, target_region: str) -> GameState:
    return replace(game_state, **{
        f'{kind}_planning': 'planning',
        f'{kind}_target': target_region,
        f'{kind}_votes': EMPTY_VOTES,
    })


def vote_funding(game_state: GameState, kind: str, player_index: int, vote: bool) -> GameState:
    votes = list(getattr(game_state, f'{kind}_votes'))
    votes[player_index] = vote
    return replace(game_state, **{f'{kind}_votes': tuple(votes)})


def cancel_funding(game_state: GameState, kind: str) -> GameState:
    return replace(game_state, **{
        f'{kind}_planning': None,
        f'{kind}_target': None,
        f'{kind}_votes': EMPTY_VOTES,
    })


def _raise_funds(game_state: GameState, kind: str) -> Optional[List[int]]:
    """Voters in favour, or None when nobody joined or someone cannot pay."""
    votes = getattr(game_state, f'{kind}_votes')
    joiners = [i for i, vote in enumerate(votes) if vote is True]
    if split_cost(game_state, joiners, FUNDING_COSTS[kind]) is None:
        return None
    return joiners


def _charge_joiners(game_state: GameState, kind: str, joiners: List[int]) -> GameState:
    share = FUNDING_COSTS[kind] / len(joiners)
    players = list(game_state.players)
    for i in joiners:
        players[i] = replace(players[i], money=players[i].money - share)
    return replace(game_state, players=tuple(players))


def execute_attack_plan(game_state: GameState, rolls: Optional[RandomValues] = None) -> GameState:
    """
    Close the attack round.

    With at least one backer who can each pay their share of 6, the backers pay
    and their combined strength attacks the target. Otherwise the plan is
    cancelled and nobody pays.
    """
    rolls = rolls or RandomValues()
    target = game_state.attack_target
    joiners = _raise_funds(game_state, 'attack')
    if joiners is None:
        return replace(cancel_funding(game_state, 'attack'),
                       last_event_result='Attack cancelled - not enough funding!')

    game_state = _charge_joiners(game_state, 'attack', joiners)
    game_state, _ = execute_attack(game_state, target, joiners, rolls.battle_roll)
    return cancel_funding(game_state, 'attack')


def execute_fortress_plan(game_state: GameState) -> GameState:
    """Close the fortress round; a funded fortress is built at once."""
    target = game_state.fortress_target
    joiners = _raise_funds(game_state, 'fortress')
    if joiners is None:
        return replace(cancel_funding(game_state, 'fortress'),
                       last_event_result='Fortress construction cancelled - not enough funding!')

    game_state = _charge_joiners(game_state, 'fortress', joiners)
    region = replace(game_state.regions[target], fortress=True)
    game_state = replace(
        game_state.with_region(target, region),
        last_event_result=f'Fortress built in {format_region_name(target)}!',
    )
    return cancel_funding(game_state, 'fortress')


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


def game_result(game_state: GameState) -> Optional[Dict[str, Any]]:
    """
    Final standings once the game has ended.

    Players are ranked by improvements, ties broken by money. When Pskov has
    fallen every faction loses and there is no winner.

    Returns:
        None while the game is still running
    """
    if not game_state.game_ended:
        return None
    ranked = sorted(
        range(len(game_state.players)),
        key=lambda i: (game_state.players[i].improvements, game_state.players[i].money),
        reverse=True,
    )
    rankings = [
        {
            'playerId': i,
            'faction': game_state.players[i].faction.value,
            'improvements': game_state.players[i].improvements,
            'money': game_state.players[i].money,
        }
        for i in ranked
    ]
    winner = None if game_state.game_over else rankings[0]['faction']
    return {
        'capitalFallen': game_state.game_over,
        'republicRegions': count_republic_regions(game_state.regions),
        'winner': winner,
        'rankings': rankings,
    }
