"""Simulation engine and schedulers."""

from .simulation import (
    GameOverCheck,
    MissingTargetError,
    SimulationError,
    UnknownSectorError,
    apply_action,
    apply_decay,
    apply_event_impact,
    check_game_over,
    roll_event,
)
from .targeting import resolve_target
from .bots import BotMove, BotPolicy, idle_policy, make_random_policy, random_bot_policy
from .scheduler import CooldownTracker, TickScheduler

__all__ = [
    # Simulation
    "GameOverCheck",
    "MissingTargetError",
    "SimulationError",
    "UnknownSectorError",
    "apply_action",
    "apply_decay",
    "apply_event_impact",
    "check_game_over",
    "roll_event",
    "resolve_target",
    # Bots
    "BotMove",
    "BotPolicy",
    "idle_policy",
    "make_random_policy",
    "random_bot_policy",
    # Scheduling
    "CooldownTracker",
    "TickScheduler",
]
