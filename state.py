"""
Game state management for "Veche: Republic vs. Order"
Implements the root game state value, configuration loading and the
initial-state factory.

The state is a frozen value: every transition builds a new GameState with
dataclasses.replace, so a snapshot that has been broadcast never changes.

Phases: resources -> construction -> events -> veche, turn advances on wrap
Players: exactly 3 (Nobles, Merchants, Commoners), index-addressed
Map: 7 named regions plus the Order's permanent home territory
"""

from __future__ import annotations
import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple, TYPE_CHECKING

from models import (
    CAPITAL, FACTIONS, ORDER, REPUBLIC,
    ConstructionAction, Effect, Player, Region, empty_buildings,
)

if TYPE_CHECKING:
    from events import EventDefinition

PHASES = ('resources', 'construction', 'events', 'veche')

PLAYER_COUNT = 3

Votes = Tuple[Any, Any, Any]
EMPTY_VOTES: Votes = (None, None, None)

DEFAULT_CONFIG = {
    'max_turns': 20,
    'debug_events': False,
    'order_base_strength': 100,
    'fortress_defense_bonus': 10,
    'defense_cost_total': 3,
    'attack_cost_total': 6,
    'fortress_cost_total': 6,
    'room_code_prefix': 'PSKOV-',
    'room_code_length': 4,
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load game constants from config.json (next to this module by default).

    Missing keys fall back to DEFAULT_CONFIG; a missing or malformed file
    yields the defaults unchanged.
    """
    config = dict(DEFAULT_CONFIG)
    if config_path is None:
        config_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config.json')
    try:
        with open(config_path, 'r') as f:
            config.update(json.load(f))
    except (FileNotFoundError, json.JSONDecodeError):
        pass
    return config


@dataclass(frozen=True)
class GameState:
    """
    Complete game state for one session.

    Phase-scoped fields are grouped by the phase that owns them; they are
    reset by the phase machine when that phase is entered or left.
    """
    turn: int = 1
    phase: str = 'resources'
    game_over: bool = False  # Capital lost
    game_ended: bool = False  # Capital lost or turn horizon passed
    players: Tuple[Player, ...] = ()
    regions: Dict[str, Region] = field(default_factory=dict)
    active_effects: Tuple[Effect, ...] = ()

    # Construction phase
    current_player: int = 0
    selected_region: str = CAPITAL
    construction_actions: Tuple[ConstructionAction, ...] = (
        ConstructionAction(), ConstructionAction(), ConstructionAction())

    # Events phase
    current_event: Optional['EventDefinition'] = None
    event_votes: Votes = EMPTY_VOTES
    event_resolved: bool = False
    last_event_result: Optional[str] = None
    event_image_revealed: bool = False
    debug_event_index: int = 0

    # Veche phase
    attack_planning: Optional[str] = None  # 'planning' while funding is open
    attack_target: Optional[str] = None
    attack_votes: Votes = EMPTY_VOTES
    fortress_planning: Optional[str] = None
    fortress_target: Optional[str] = None
    fortress_votes: Votes = EMPTY_VOTES

    # Players who left after the game started; they abstain from every vote
    forfeited: Tuple[bool, bool, bool] = (False, False, False)

    def get_player(self, index: int) -> Player:
        return self.players[index]

    def with_player(self, index: int, player: Player) -> 'GameState':
        players = list(self.players)
        players[index] = player
        return replace(self, players=tuple(players))

    def with_region(self, name: str, region: Region) -> 'GameState':
        regions = dict(self.regions)
        regions[name] = region
        return replace(self, regions=regions)

    def player_index(self, faction) -> int:
        for index, player in enumerate(self.players):
            if player.faction == faction:
                return index
        raise KeyError(faction)

    def active_slots(self) -> list:
        """Indices of players still taking part (not forfeited)."""
        return [i for i in range(PLAYER_COUNT) if not self.forfeited[i]]


def create_initial_regions() -> Dict[str, Region]:
    """Starting map: the Republic holds everything except Bear Hill."""
    regions = {
        CAPITAL: Region(controller=REPUBLIC, fortress=True, buildings=empty_buildings(True)),
    }
    for name in ('ostrov', 'izborsk', 'skrynnitsy', 'gdov', 'pechory'):
        regions[name] = Region(controller=REPUBLIC)
    regions['bearhill'] = Region(controller=ORDER)
    return regions


def create_initial_players() -> Tuple[Player, ...]:
    return tuple(Player(faction=faction) for faction in FACTIONS)


def initialize_game() -> GameState:
    """
    Create a fresh game state in the resources phase of turn 1.

    Sessions advance it once before play so that the first visible phase is
    construction with first-turn income already paid.
    """
    return GameState(
        turn=1,
        phase='resources',
        players=create_initial_players(),
        regions=create_initial_regions(),
    )


def votes_complete(votes: Votes, state: GameState) -> bool:
    """True once every non-forfeited player has cast a vote."""
    return all(votes[i] is not None for i in state.active_slots())


def get_game_summary(game_state: GameState) -> Dict[str, Any]:
    """
    Serialize the game state for the wire.

    Keys follow the camelCase names clients already consume.
    """
    event = game_state.current_event
    return {
        'turn': game_state.turn,
        'phase': game_state.phase,
        'gameOver': game_state.game_over,
        'gameEnded': game_state.game_ended,
        'currentPlayer': game_state.current_player,
        'selectedRegion': game_state.selected_region,
        'constructionActions': [
            {'improvement': ca.improvement, 'equipment': ca.equipment}
            for ca in game_state.construction_actions
        ],
        'currentEvent': event.to_dict() if event is not None else None,
        'eventVotes': list(game_state.event_votes),
        'eventResolved': game_state.event_resolved,
        'lastEventResult': game_state.last_event_result,
        'eventImageRevealed': game_state.event_image_revealed,
        'debugEventIndex': game_state.debug_event_index,
        'activeEffects': [effect.to_dict() for effect in game_state.active_effects],
        'attackPlanning': game_state.attack_planning,
        'attackTarget': game_state.attack_target,
        'attackVotes': list(game_state.attack_votes),
        'fortressPlanning': game_state.fortress_planning,
        'fortressTarget': game_state.fortress_target,
        'fortressVotes': list(game_state.fortress_votes),
        'forfeited': list(game_state.forfeited),
        'regions': {name: region.to_dict() for name, region in game_state.regions.items()},
        'players': [player.to_dict() for player in game_state.players],
    }
