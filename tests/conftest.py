"""Shared test fixtures and helpers."""

import random
from dataclasses import replace

import pytest

from actions import Action, ActionType, apply_action
from events import EVENTS_BY_ID
from models import FACTIONS
from phases import advance
from rolls import RandomValues
from state import EMPTY_VOTES, GameState, initialize_game

# Rolls that never trigger anything random: battles are won, coins land high
SAFE_ROLLS = RandomValues(battle_roll=0.0, event_roll=0.99, target_index=0,
                          event_index=0, region_roll=0.0, building_picks=(0.0, 0.0, 0.0, 0.0))


# --- Fixtures ---


@pytest.fixture
def game():
    """Fresh game in the resources phase of turn 1."""
    return initialize_game()


@pytest.fixture
def started_game():
    """Game as a session starts it: first income paid, construction phase."""
    return advance(initialize_game(), SAFE_ROLLS)


@pytest.fixture
def rng():
    """Deterministic RNG seeded at 42."""
    return random.Random(42)


@pytest.fixture
def api_client():
    """Flask test client."""
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


# --- Helper functions ---


def with_money(state: GameState, *amounts: float) -> GameState:
    """Set each player's money, in slot order."""
    players = tuple(replace(p, money=m) for p, m in zip(state.players, amounts))
    return replace(state, players=players + state.players[len(amounts):])


def make_state(phase="construction", money=(5.0, 5.0, 5.0), **kwargs) -> GameState:
    """Fresh game forced into a phase with chosen money."""
    state = replace(initialize_game(), phase=phase, **kwargs)
    return with_money(state, *money)


def make_event_state(event_id: str, votes=EMPTY_VOTES, money=(5.0, 5.0, 5.0), **kwargs) -> GameState:
    """Game in the events phase with the given card face up."""
    return make_state(
        phase="events",
        money=money,
        current_event=EVENTS_BY_ID[event_id],
        event_votes=tuple(votes),
        **kwargs,
    )


def act(state: GameState, player_index: int, action_type: ActionType, rolls=None, **payload) -> GameState:
    """Apply one action and return the new state."""
    return apply_action(state, Action(action_type, **payload), player_index, rolls or SAFE_ROLLS).state


def faction_index(faction_name: str) -> int:
    return [f.value for f in FACTIONS].index(faction_name)
