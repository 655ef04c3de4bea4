"""
Random draws threaded into the pure resolution functions.

The authoritative session draws one RandomValues per action so every observer
sees the same outcome. Any field left as None is drawn locally by the
function that needs it, which only happens outside a session (tests, tools).
"""

import random
from dataclasses import dataclass
from typing import Optional, Tuple

# Enough picks for the largest multi-building destruction in the deck
MAX_BUILDING_PICKS = 4


@dataclass(frozen=True)
class RandomValues:
    battle_roll: Optional[float] = None  # Uniform [0, 100)
    event_roll: Optional[float] = None  # Uniform [0, 1): coin flips and dice
    target_index: Optional[int] = None  # Order attack target pick
    event_index: Optional[int] = None  # Event card draw
    region_roll: Optional[float] = None  # Uniform [0, 1): random region pick
    building_picks: Tuple[float, ...] = ()  # Uniform [0, 1) per destroyed building

    @classmethod
    def draw(cls, rng: random.Random, deck_size: int) -> 'RandomValues':
        """Draw every value an action could need from the session's generator."""
        return cls(
            battle_roll=rng.random() * 100,
            event_roll=rng.random(),
            target_index=rng.randrange(1 << 16),
            event_index=rng.randrange(deck_size),
            region_roll=rng.random(),
            building_picks=tuple(rng.random() for _ in range(MAX_BUILDING_PICKS)),
        )

    def coin(self) -> float:
        return self.event_roll if self.event_roll is not None else random.random()

    def die(self) -> int:
        """A six-sided die derived from event_roll."""
        return int(self.coin() * 6) + 1

    def pick_index(self, count: int) -> int:
        """Index into a list of `count` candidates for the Order's target."""
        if self.target_index is not None:
            return self.target_index % count
        return random.randrange(count)

    def region_index(self, count: int) -> int:
        roll = self.region_roll if self.region_roll is not None else random.random()
        return min(int(roll * count), count - 1)
