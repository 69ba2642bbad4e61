"""
Automated player policies.

A policy is called once per automated player per simulated second and
returns the move it wants to make, or None to sit the second out. Policies
only choose; the session store applies the move.
"""

import random
from dataclasses import dataclass
from typing import Callable

from ..state.catalog import actions_for_role
from ..state.schema import Action, Player, SystemState, TargetKind


DEFAULT_ACTION_CHANCE = 0.1


@dataclass(frozen=True)
class BotMove:
    """An action an automated player decided to take."""

    action: Action
    target_sector_id: str | None = None


BotPolicy = Callable[[Player, SystemState, random.Random], BotMove | None]


def random_bot_policy(
    player: Player,
    state: SystemState,
    rng: random.Random,
    chance: float = DEFAULT_ACTION_CHANCE,
) -> BotMove | None:
    """Act with probability `chance`: random role action, random sector."""
    if rng.random() >= chance:
        return None

    options = actions_for_role(player.role)
    if not options:
        return None

    action = rng.choice(options)
    target = None
    if action.target_kind == TargetKind.SECTOR and state.sectors:
        target = rng.choice(list(state.sectors)).id
    return BotMove(action=action, target_sector_id=target)


def make_random_policy(chance: float) -> BotPolicy:
    """Random policy bound to a configured action chance."""
    def policy(player: Player, state: SystemState, rng: random.Random) -> BotMove | None:
        return random_bot_policy(player, state, rng, chance=chance)
    return policy


def idle_policy(player: Player, state: SystemState, rng: random.Random) -> BotMove | None:
    """Never acts. Useful for scripted scenarios."""
    return None
