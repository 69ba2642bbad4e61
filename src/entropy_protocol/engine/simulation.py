"""
Simulation engine: pure transitions over SystemState.

Nothing in this module performs I/O or touches shared state. Randomness comes
from the `rng` argument (module-level `random` when omitted), so a seeded
`random.Random` makes every function deterministic.

Each operation builds its result from scratch and clamps every percentage
field exactly once, at the end. Intermediate values may leave [0, 100].
"""

import random
from datetime import datetime
from typing import NamedTuple
from uuid import uuid4

from ..state.catalog import ANY_CATEGORY, DISASTER_TEMPLATES
from ..state.schema import (
    Action,
    GameEvent,
    SectorState,
    Severity,
    SystemState,
    TargetKind,
)


# Decay per simulated second
POWER_DECAY = 0.05
PANIC_GROWTH = 0.1
DAMAGED_SECTOR_THRESHOLD = 50
DAMAGED_SECTOR_POWER_DRAIN = 0.02
HAZARD_STRUCTURE_DAMAGE = 0.1
HAZARD_PANIC_GROWTH = 0.05

# Event roll
EVENT_BASE_CHANCE = 0.05
EVENT_CHANCE_PER_ROUND = 0.02

# Event impact: (integrity loss, hazard gain)
CRITICAL_IMPACT = (20, 30)
STANDARD_IMPACT = (10, 15)
EVENT_PANIC = 5

COLLAPSE_SECTOR_COUNT = 3

REASON_COLLAPSE = "MULTIPLE SECTOR COLLAPSE"
REASON_BLACKOUT = "TOTAL BLACKOUT"
REASON_RIOTS = "COLONY RIOTS — COMMAND LOST"


class SimulationError(Exception):
    """An operation was asked to do something it cannot resolve."""
    pass


class MissingTargetError(SimulationError):
    """A SECTOR action arrived without a resolved target."""
    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Action {action_id} requires a target sector.")


class UnknownSectorError(SimulationError):
    """A target sector id does not exist."""
    def __init__(self, sector_id: str):
        self.sector_id = sector_id
        super().__init__(f"Unknown sector: {sector_id}")


class GameOverCheck(NamedTuple):
    is_over: bool
    reason: str | None = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _finish(
    panic: float,
    power: float,
    network: float,
    sectors: list[SectorState],
) -> SystemState:
    """Clamp every percentage and build the resulting snapshot."""
    return SystemState(
        global_panic=clamp(panic),
        global_power=clamp(power),
        global_network=clamp(network),
        sectors=tuple(
            sector.model_copy(update={
                "structural_integrity": clamp(sector.structural_integrity),
                "hazard_level": clamp(sector.hazard_level),
            })
            for sector in sectors
        ),
    )


# -----------------------------------------------------------------------------
# Decay
# -----------------------------------------------------------------------------

def apply_decay(state: SystemState) -> SystemState:
    """One simulated second of entropy."""
    power = state.global_power - POWER_DECAY
    panic = state.global_panic + PANIC_GROWTH
    sectors: list[SectorState] = []

    for sector in state.sectors:
        if sector.structural_integrity < DAMAGED_SECTOR_THRESHOLD:
            power -= DAMAGED_SECTOR_POWER_DRAIN
        if sector.hazard_level > 0:
            sector = sector.model_copy(update={
                "structural_integrity": sector.structural_integrity - HAZARD_STRUCTURE_DAMAGE,
            })
            panic += HAZARD_PANIC_GROWTH
        sectors.append(sector)

    return _finish(panic, power, state.global_network, sectors)


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------

def event_chance(round_number: int) -> float:
    return min(1.0, EVENT_BASE_CHANCE + EVENT_CHANCE_PER_ROUND * round_number)


def roll_event(
    round_number: int,
    sectors: tuple[SectorState, ...] | list[SectorState],
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> GameEvent | None:
    """
    Roll for a random disaster.

    Returns:
        A new GameEvent, or None when the roll misses (or there are no sectors)
    """
    rng = rng or random
    if not sectors or rng.random() >= event_chance(round_number):
        return None

    template = rng.choice(DISASTER_TEMPLATES)
    matching = [
        s for s in sectors
        if template.target == ANY_CATEGORY or s.category == template.target
    ]
    target = rng.choice(matching) if matching else rng.choice(list(sectors))

    return GameEvent(
        id=uuid4().hex[:9],
        title=template.title,
        description=template.description,
        severity=template.severity,
        target_sector_id=target.id,
        timestamp=now or datetime.now(),
    )


def apply_event_impact(state: SystemState, event: GameEvent) -> SystemState:
    """Damage the target sector and rattle the population."""
    if state.sector(event.target_sector_id) is None:
        return state

    loss, gain = CRITICAL_IMPACT if event.severity == Severity.CRITICAL else STANDARD_IMPACT
    sectors = [
        sector.model_copy(update={
            "active_event_id": event.id,
            "structural_integrity": sector.structural_integrity - loss,
            "hazard_level": sector.hazard_level + gain,
        }) if sector.id == event.target_sector_id else sector
        for sector in state.sectors
    ]

    return _finish(
        state.global_panic + EVENT_PANIC,
        state.global_power,
        state.global_network,
        sectors,
    )


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

def apply_action(
    state: SystemState,
    action: Action,
    target_sector_id: str | None = None,
) -> SystemState:
    """
    Resolve one action against the system.

    Unknown action ids are a deliberate no-op; their cost is still paid.

    Raises:
        MissingTargetError: SECTOR action with no target
        UnknownSectorError: target id not in the system
    """
    values = {
        "global_panic": state.global_panic,
        "global_power": state.global_power,
        "global_network": state.global_network,
    }
    if action.cost is not None:
        values[action.cost.resource] -= action.cost.amount

    sectors = list(state.sectors)

    if action.target_kind == TargetKind.GLOBAL:
        if action.id == "cmd_lockdown":
            values["global_panic"] -= 25
        elif action.id == "cmd_rally":
            sectors = [
                s.model_copy(update={"structural_integrity": min(100.0, s.structural_integrity + 5)})
                for s in sectors
            ]
        elif action.id == "eng_overcharge":
            values["global_power"] += 25
        elif action.id == "com_broadcast":
            values["global_panic"] -= 10
        elif action.id == "com_reboot":
            values["global_network"] = 100.0
        elif action.id == "log_supply":
            # Cooldown refresh happens on the submitting peer
            values["global_power"] += 5
    else:
        if target_sector_id is None:
            raise MissingTargetError(action.id)
        index = next(
            (i for i, s in enumerate(sectors) if s.id == target_sector_id),
            None,
        )
        if index is None:
            raise UnknownSectorError(target_sector_id)

        sector = sectors[index]
        integrity = sector.structural_integrity
        hazard = sector.hazard_level

        if action.id == "eng_reinforce":
            integrity = min(100.0, integrity + 25)
        elif action.id == "bio_cleanse":
            hazard = max(0.0, hazard - 40)
        elif action.id == "bio_quarantine":
            hazard = max(0.0, hazard - 10)
            values["global_panic"] += 5
        elif action.id == "sec_suppress":
            values["global_panic"] -= 5
        elif action.id == "log_reroute":
            integrity += 5
            hazard = max(0.0, hazard - 5)

        sectors[index] = sector.model_copy(update={
            "structural_integrity": integrity,
            "hazard_level": hazard,
        })

    return _finish(
        values["global_panic"],
        values["global_power"],
        values["global_network"],
        sectors,
    )


# -----------------------------------------------------------------------------
# Game over
# -----------------------------------------------------------------------------

def check_game_over(state: SystemState) -> GameOverCheck:
    """First matching failure condition wins."""
    collapsed = sum(1 for s in state.sectors if s.structural_integrity <= 0)

    if collapsed >= COLLAPSE_SECTOR_COUNT:
        return GameOverCheck(True, REASON_COLLAPSE)
    if state.global_power <= 0:
        return GameOverCheck(True, REASON_BLACKOUT)
    if state.global_panic >= 100:
        return GameOverCheck(True, REASON_RIOTS)
    return GameOverCheck(False)
