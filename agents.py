"""
Computer players for hot-seat and unattended games.

A Decider looks at the current snapshot and returns the next action for its
seat, or None when it has nothing to do right now. Candidate actions are
filtered through validate_action, so a decider never needs its own copy of
the rules.
"""

import random
from typing import List, Optional

from actions import Action, ActionType, ActionValidationError, validate_action
from events import EventKind
from models import EQUIPMENT_ITEMS, buildings_for_faction
from phases import select_region
from state import GameState


class Decider:
    """Base class for AI seats."""
    name: str = "base"

    def decide(self, game_state: GameState, player_index: int, rng: random.Random) -> Optional[Action]:
        """Return the next action for this seat, or None to wait."""
        raise NotImplementedError


def is_legal(game_state: GameState, action: Action, player_index: int) -> bool:
    try:
        return validate_action(game_state, action, player_index)
    except ActionValidationError:
        return False


def _build_options(game_state: GameState, player_index: int) -> List[Action]:
    """
    Next step towards each possible building: the build itself when the
    selected region allows it, otherwise selecting a region that does.
    """
    faction = game_state.players[player_index].faction
    builds = [Action(ActionType.BUILD_BUILDING, building_type=key) for key in buildings_for_faction(faction)]
    here = [b for b in builds if is_legal(game_state, b, player_index)]
    if here:
        return here

    options = []
    for region_name in game_state.regions:
        if region_name == game_state.selected_region:
            continue
        there = select_region(game_state, region_name)
        if any(is_legal(there, b, player_index) for b in builds):
            options.append(Action(ActionType.SELECT_REGION, region_name=region_name))
    return options


def _equipment_options(game_state: GameState, player_index: int) -> List[Action]:
    candidates = [Action(ActionType.BUY_EQUIPMENT, item=item) for item in EQUIPMENT_ITEMS]
    return [a for a in candidates if is_legal(game_state, a, player_index)]


def _end_turn(game_state: GameState, player_index: int) -> Optional[Action]:
    """Pass the turn on, or wait if this is the last seat of the round."""
    if player_index == game_state.active_slots()[-1]:
        return None
    return Action(ActionType.NEXT_PLAYER)


def _event_vote_options(game_state: GameState, player_index: int) -> List[Action]:
    event = game_state.current_event
    if event is None or not event.needs_votes:
        return []
    if event.binary_vote:
        votes = [True, False]
    else:
        votes = [option.id for option in event.options]
    candidates = [Action(ActionType.VOTE_EVENT, vote=vote) for vote in votes]
    return [a for a in candidates if is_legal(game_state, a, player_index)]


def _funding_vote_type(game_state: GameState) -> Optional[ActionType]:
    if game_state.attack_planning:
        return ActionType.VOTE_ATTACK
    if game_state.fortress_planning:
        return ActionType.VOTE_FORTRESS
    return None


class RandomDecider(Decider):
    """Uniformly random legal play. The baseline every other decider should beat."""
    name = "random"

    def decide(self, game_state: GameState, player_index: int, rng: random.Random) -> Optional[Action]:
        if game_state.phase == 'construction' and game_state.current_player == player_index:
            options = _build_options(game_state, player_index) + _equipment_options(game_state, player_index)
            if options and rng.random() < 0.7:
                return rng.choice(options)
            return _end_turn(game_state, player_index)

        if game_state.phase == 'events':
            options = _event_vote_options(game_state, player_index)
            return rng.choice(options) if options else None

        vote_type = _funding_vote_type(game_state)
        if game_state.phase == 'veche' and vote_type is not None:
            action = Action(vote_type, vote=rng.random() < 0.5)
            return action if is_legal(game_state, action, player_index) else None
        return None


class CautiousDecider(Decider):
    """
    Builds whenever it can afford to, arms itself with what is left, backs
    the event default and only commits money it actually has.
    """
    name = "cautious"

    def decide(self, game_state: GameState, player_index: int, rng: random.Random) -> Optional[Action]:
        player = game_state.players[player_index]

        if game_state.phase == 'construction' and game_state.current_player == player_index:
            builds = _build_options(game_state, player_index)
            if builds:
                return builds[0]
            equipment = _equipment_options(game_state, player_index)
            if equipment:
                return equipment[0]
            return _end_turn(game_state, player_index)

        if game_state.phase == 'events':
            options = _event_vote_options(game_state, player_index)
            if not options:
                return None
            event = game_state.current_event
            if event.kind == EventKind.ORDER_ATTACK:
                return Action(ActionType.VOTE_EVENT, vote=player.money >= 1)
            for option in options:
                if option.vote == event.default_option:
                    return option
            return options[-1]

        vote_type = _funding_vote_type(game_state)
        if game_state.phase == 'veche' and vote_type is not None:
            action = Action(vote_type, vote=player.money >= 2)
            return action if is_legal(game_state, action, player_index) else None
        return None
