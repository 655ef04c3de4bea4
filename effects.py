"""
Active effects ledger: timed strength and income modifiers.

Effects decay once per full phase cycle (at the veche -> resources wrap) and
are removed as soon as they run out.
"""

from dataclasses import replace
from typing import Iterable

from models import Effect, EffectType, Faction
from state import GameState

STRENGTH_TYPES = (EffectType.STRENGTH_BONUS, EffectType.STRENGTH_PENALTY)


def strength_bonus(target: str, value: float, turns: int, description: str = '') -> Effect:
    return Effect(EffectType.STRENGTH_BONUS, target, abs(value), turns, description)


def strength_penalty(target: str, value: float, turns: int, description: str = '') -> Effect:
    """Penalty values are stored negative whatever sign the caller passes."""
    return Effect(EffectType.STRENGTH_PENALTY, target, -abs(value), turns, description)


def income_penalty(target: str, fraction: float, turns: int, description: str = '') -> Effect:
    """An income cut, e.g. fraction=0.5 halves income while active."""
    return Effect(EffectType.INCOME_PENALTY, target, -abs(fraction), turns, description)


def apply_effects(state: GameState, *effects: Effect) -> GameState:
    """Append effects to the ledger."""
    return replace(state, active_effects=state.active_effects + tuple(effects))


def decay(state: GameState) -> GameState:
    """Age every effect by one turn and drop the ones that expire."""
    remaining = []
    for effect in state.active_effects:
        turns = effect.turns_remaining - 1
        if turns > 0:
            remaining.append(replace(effect, turns_remaining=turns))
    return replace(state, active_effects=tuple(remaining))


def strength_modifier(effects: Iterable[Effect], faction: Faction) -> float:
    return sum(
        effect.value for effect in effects
        if effect.type in STRENGTH_TYPES and effect.applies_to(faction)
    )


def income_modifier(effects: Iterable[Effect], faction: Faction) -> float:
    """Multiplier on income; each matching penalty scales it by (1 + value)."""
    modifier = 1.0
    for effect in effects:
        if effect.type == EffectType.INCOME_PENALTY and effect.applies_to(faction):
            modifier *= 1 + effect.value
    return modifier
