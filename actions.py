from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from events import resolve_current_event
from models import (
    BUILDING_COST, BUILDING_TYPES, EQUIPMENT_COST, EQUIPMENT_ITEMS, MAX_EQUIPMENT,
)
from phases import (
    advance, build_building, buy_equipment, cancel_funding, execute_attack_plan,
    execute_fortress_plan, initiate_funding, next_player, select_region, vote_funding,
)
from regions import can_build_in, regions_for_fortress, valid_republic_targets
from rolls import RandomValues
from state import GameState, PLAYER_COUNT, initialize_game, votes_complete


class ActionType(Enum):
    NEXT_PHASE = "NEXT_PHASE"
    NEXT_PLAYER = "NEXT_PLAYER"
    SELECT_REGION = "SELECT_REGION"
    BUILD_BUILDING = "BUILD_BUILDING"
    BUY_EQUIPMENT = "BUY_EQUIPMENT"
    VOTE_EVENT = "VOTE_EVENT"
    RESOLVE_EVENT = "RESOLVE_EVENT"
    INITIATE_ATTACK = "INITIATE_ATTACK"
    VOTE_ATTACK = "VOTE_ATTACK"
    EXECUTE_ATTACK = "EXECUTE_ATTACK"
    CANCEL_ATTACK = "CANCEL_ATTACK"
    INITIATE_FORTRESS = "INITIATE_FORTRESS"
    VOTE_FORTRESS = "VOTE_FORTRESS"
    EXECUTE_FORTRESS = "EXECUTE_FORTRESS"
    CANCEL_FORTRESS = "CANCEL_FORTRESS"
    RESET_GAME = "RESET_GAME"


# Funding round each veche action belongs to
FUNDING_KIND = {
    ActionType.INITIATE_ATTACK: 'attack',
    ActionType.VOTE_ATTACK: 'attack',
    ActionType.EXECUTE_ATTACK: 'attack',
    ActionType.CANCEL_ATTACK: 'attack',
    ActionType.INITIATE_FORTRESS: 'fortress',
    ActionType.VOTE_FORTRESS: 'fortress',
    ActionType.EXECUTE_FORTRESS: 'fortress',
    ActionType.CANCEL_FORTRESS: 'fortress',
}


class Action:
    def __init__(self, action_type: ActionType, building_type: Optional[str] = None,
                 item: Optional[str] = None, vote: Any = None,
                 target_region: Optional[str] = None, region_name: Optional[str] = None):
        """A player request; payload fields depend on the action type."""
        self.action_type = action_type
        self.building_type = building_type  # BUILD_BUILDING
        self.item = item  # BUY_EQUIPMENT: 'weapons' or 'armor'
        self.vote = vote  # Option id, or True/False for yes/no rounds
        self.target_region = target_region  # INITIATE_ATTACK / INITIATE_FORTRESS
        self.region_name = region_name  # SELECT_REGION

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Action':
        """Build an action from its wire form, e.g. {'type': 'VOTE_EVENT', 'vote': 'modest'}."""
        if not isinstance(data, dict):
            raise ActionValidationError("Action must be an object")
        try:
            action_type = ActionType(data.get('type'))
        except (ValueError, TypeError):
            raise ActionValidationError(f"Unknown action type: {data.get('type')}")
        for key in ('buildingType', 'item', 'targetRegion', 'regionName'):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise ActionValidationError(f"{key} must be a string")
        if data.get('vote') is not None and not isinstance(data['vote'], (str, bool)):
            raise ActionValidationError("vote must be an option id or true/false")
        return cls(
            action_type,
            building_type=data.get('buildingType'),
            item=data.get('item'),
            vote=data.get('vote'),
            target_region=data.get('targetRegion'),
            region_name=data.get('regionName'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.action_type.value}
        for key, value in (('buildingType', self.building_type), ('item', self.item),
                           ('vote', self.vote), ('targetRegion', self.target_region),
                           ('regionName', self.region_name)):
            if value is not None:
                data[key] = value
        return data


class ActionValidationError(Exception):
    """Exception raised when an action breaks the game rules."""
    pass


@dataclass(frozen=True)
class ActionResult:
    state: GameState
    result: Optional[str] = None  # Outcome message for the acting player


def _require_phase(game_state: GameState, phase: str, action: Action) -> None:
    if game_state.phase != phase:
        raise ActionValidationError(
            f"{action.action_type.value} is only allowed in the {phase} phase (current: {game_state.phase})")


def _require_slot(player_index: int) -> None:
    if not isinstance(player_index, int) or not 0 <= player_index < PLAYER_COUNT:
        raise ActionValidationError(f"Invalid player slot: {player_index}")


def _validate_next_phase(game_state: GameState) -> None:
    if game_state.phase == 'events' and not game_state.event_resolved:
        raise ActionValidationError("The event must be resolved before leaving the events phase")
    if game_state.phase == 'veche' and (game_state.attack_planning or game_state.fortress_planning):
        raise ActionValidationError("Finish or cancel the open funding round first")


def _validate_construction(game_state: GameState, action: Action, player_index: int) -> None:
    _require_phase(game_state, 'construction', action)
    if player_index != game_state.current_player:
        raise ActionValidationError(f"It is player {game_state.current_player}'s turn to build")

    player = game_state.players[player_index]
    done = game_state.construction_actions[player_index]

    if action.action_type == ActionType.SELECT_REGION:
        if action.region_name not in game_state.regions:
            raise ActionValidationError(f"Unknown region: {action.region_name}")

    elif action.action_type == ActionType.BUILD_BUILDING:
        building = BUILDING_TYPES.get(action.building_type)
        if building is None:
            raise ActionValidationError(f"Unknown building type: {action.building_type}")
        if building.faction != player.faction:
            raise ActionValidationError(f"{player.faction.value} cannot build {building.name}")
        if done.improvement:
            raise ActionValidationError("Already built an improvement this turn")
        if player.money < BUILDING_COST:
            raise ActionValidationError(
                f"Insufficient money (has {player.money:g}, needs {BUILDING_COST})")
        region_name = game_state.selected_region
        region = game_state.regions.get(region_name)
        if region is None or not can_build_in(region_name, region, player.faction):
            raise ActionValidationError(f"{player.faction.value} cannot build in {region_name}")
        if action.building_type not in region.buildings:
            raise ActionValidationError(f"{building.name} cannot be built in {region_name}")
        if region.building_count(action.building_type) >= building.max_per_region:
            raise ActionValidationError(f"No room for another {building.name} in {region_name}")

    elif action.action_type == ActionType.BUY_EQUIPMENT:
        if action.item not in EQUIPMENT_ITEMS:
            raise ActionValidationError(f"Unknown equipment item: {action.item}")
        if done.equipment:
            raise ActionValidationError("Already bought equipment this turn")
        if getattr(player, action.item) >= MAX_EQUIPMENT:
            raise ActionValidationError(f"{action.item.capitalize()} already at maximum ({MAX_EQUIPMENT})")
        if player.money < EQUIPMENT_COST:
            raise ActionValidationError(
                f"Insufficient money (has {player.money:g}, needs {EQUIPMENT_COST})")


def _validate_event(game_state: GameState, action: Action, player_index: int) -> None:
    _require_phase(game_state, 'events', action)
    event = game_state.current_event
    if event is None:
        raise ActionValidationError("There is no event to act on")
    if game_state.event_resolved:
        raise ActionValidationError("The event has already been resolved")

    if action.action_type == ActionType.RESOLVE_EVENT:
        if event.needs_votes and not votes_complete(game_state.event_votes, game_state):
            raise ActionValidationError("Not every player has voted yet")
        return

    if not event.needs_votes:
        raise ActionValidationError(f"{event.name} takes no votes")
    if game_state.event_votes[player_index] is not None:
        raise ActionValidationError("You have already voted on this event")
    if event.binary_vote:
        if not isinstance(action.vote, bool):
            raise ActionValidationError("Vote must be true or false")
        return

    option = event.option(action.vote)
    if option is None:
        raise ActionValidationError(f"Unknown option: {action.vote}")
    money = game_state.players[player_index].money
    if money < option.requires_min_money:
        raise ActionValidationError(
            f"{option.name} requires at least {option.requires_min_money:g} money (has {money:g})")


def _validate_veche(game_state: GameState, action: Action, player_index: int) -> None:
    _require_phase(game_state, 'veche', action)
    kind = FUNDING_KIND[action.action_type]
    planning = getattr(game_state, f'{kind}_planning')
    votes = getattr(game_state, f'{kind}_votes')

    if action.action_type in (ActionType.INITIATE_ATTACK, ActionType.INITIATE_FORTRESS):
        if game_state.attack_planning or game_state.fortress_planning:
            raise ActionValidationError("A funding round is already open")
        if kind == 'attack':
            allowed = valid_republic_targets(game_state.regions)
        else:
            allowed = regions_for_fortress(game_state.regions)
        if action.target_region not in allowed:
            raise ActionValidationError(f"Invalid {kind} target: {action.target_region}")
        return

    if not planning:
        raise ActionValidationError(f"No {kind} is being planned")

    if action.action_type in (ActionType.VOTE_ATTACK, ActionType.VOTE_FORTRESS):
        if not isinstance(action.vote, bool):
            raise ActionValidationError("Vote must be true or false")
        if votes[player_index] is not None:
            raise ActionValidationError(f"You have already voted on this {kind}")
    elif action.action_type in (ActionType.EXECUTE_ATTACK, ActionType.EXECUTE_FORTRESS):
        if not votes_complete(votes, game_state):
            raise ActionValidationError("Not every player has voted yet")


def validate_action(game_state: GameState, action: Action, player_index: int) -> bool:
    """Check an action against the rules; raises ActionValidationError with the reason."""
    _require_slot(player_index)
    if action.action_type == ActionType.RESET_GAME:
        return True
    if game_state.game_over or game_state.game_ended:
        raise ActionValidationError("The game has ended")
    if game_state.forfeited[player_index]:
        raise ActionValidationError("This player has left the game")

    if action.action_type == ActionType.NEXT_PHASE:
        _validate_next_phase(game_state)
    elif action.action_type == ActionType.NEXT_PLAYER:
        _require_phase(game_state, 'construction', action)
        if player_index != game_state.current_player:
            raise ActionValidationError(f"It is player {game_state.current_player}'s turn to build")
    elif action.action_type in (ActionType.SELECT_REGION, ActionType.BUILD_BUILDING,
                                ActionType.BUY_EQUIPMENT):
        _validate_construction(game_state, action, player_index)
    elif action.action_type in (ActionType.VOTE_EVENT, ActionType.RESOLVE_EVENT):
        _validate_event(game_state, action, player_index)
    else:
        _validate_veche(game_state, action, player_index)
    return True


def apply_action(game_state: GameState, action: Action, player_index: int,
                 rolls: Optional[RandomValues] = None) -> ActionResult:
    """
    Validate and apply one player action.

    Args:
        game_state: Current game state
        action: The request
        player_index: Acting player's slot
        rolls: Session draws for anything random the action triggers

    Returns:
        ActionResult with the new state; the input state is never modified
    """
    validate_action(game_state, action, player_index)
    rolls = rolls or RandomValues()
    kind = action.action_type

    if kind == ActionType.RESET_GAME:
        return ActionResult(advance(initialize_game(), rolls), "Game reset")
    if kind == ActionType.NEXT_PHASE:
        new_state = advance(game_state, rolls)
        return ActionResult(new_state, f"Turn {new_state.turn}: {new_state.phase}")
    if kind == ActionType.NEXT_PLAYER:
        return ActionResult(next_player(game_state))
    if kind == ActionType.SELECT_REGION:
        return ActionResult(select_region(game_state, action.region_name))
    if kind == ActionType.BUILD_BUILDING:
        new_state = build_building(game_state, player_index, action.building_type)
        return ActionResult(new_state, f"Built {BUILDING_TYPES[action.building_type].name}")
    if kind == ActionType.BUY_EQUIPMENT:
        return ActionResult(buy_equipment(game_state, player_index, action.item),
                            f"Bought {action.item}")

    if kind == ActionType.VOTE_EVENT:
        votes = list(game_state.event_votes)
        votes[player_index] = action.vote
        return ActionResult(replace(game_state, event_votes=tuple(votes)))
    if kind == ActionType.RESOLVE_EVENT:
        new_state = resolve_current_event(game_state, rolls)
        if new_state.event_resolved:
            new_state = replace(new_state, event_image_revealed=True)
        return ActionResult(new_state, new_state.last_event_result)

    funding = FUNDING_KIND[kind]
    if kind in (ActionType.INITIATE_ATTACK, ActionType.INITIATE_FORTRESS):
        return ActionResult(initiate_funding(game_state, funding, action.target_region))
    if kind in (ActionType.VOTE_ATTACK, ActionType.VOTE_FORTRESS):
        return ActionResult(vote_funding(game_state, funding, player_index, action.vote))
    if kind in (ActionType.CANCEL_ATTACK, ActionType.CANCEL_FORTRESS):
        return ActionResult(cancel_funding(game_state, funding), f"{funding.capitalize()} cancelled")
    if kind == ActionType.EXECUTE_ATTACK:
        new_state = execute_attack_plan(game_state, rolls)
    else:
        new_state = execute_fortress_plan(game_state)
    return ActionResult(new_state, new_state.last_event_result)
