"""
Pydantic models for Entropy Protocol game state.

Every record here is frozen. Transitions build new instances instead of
mutating old ones, so a snapshot handed to the replication layer can be
compared, re-sent, or kept as "last applied" as is.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class GamePhase(str, Enum):
    LOBBY = "LOBBY"
    PLAYING = "PLAYING"
    GAME_OVER = "GAME_OVER"
    VICTORY = "VICTORY"


# Phases only move forward along these edges
PHASE_TRANSITIONS: dict[GamePhase, set[GamePhase]] = {
    GamePhase.LOBBY: {GamePhase.PLAYING},
    GamePhase.PLAYING: {GamePhase.GAME_OVER, GamePhase.VICTORY},
    GamePhase.GAME_OVER: set(),
    GamePhase.VICTORY: set(),
}


class RoleType(str, Enum):
    COMMANDER = "COMMANDER"  # Essential: broad metrics, lockdowns
    ENGINEER = "ENGINEER"    # Essential: power and structure
    BIO_SEC = "BIO_SEC"      # Essential: hazards and containment
    COMMS = "COMMS"          # Essential: network and panic
    SECURITY = "SECURITY"    # Support: riot control
    LOGISTICS = "LOGISTICS"  # Support: resource movement


class SectorCategory(str, Enum):
    RESIDENTIAL = "residential"
    INDUSTRIAL = "industrial"
    MEDICAL = "medical"
    COMMAND = "command"
    NETWORK = "network"
    POWER = "power"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    CRITICAL = "CRITICAL"


class TargetKind(str, Enum):
    GLOBAL = "GLOBAL"
    SECTOR = "SECTOR"


# -----------------------------------------------------------------------------
# Roster
# -----------------------------------------------------------------------------

class Player(BaseModel):
    """A roster entry. Identity is the opaque `id`."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: RoleType | None = None
    is_authority: bool = False
    is_automated: bool = False
    is_connected: bool = True  # False once a peer drops mid-game


# -----------------------------------------------------------------------------
# Simulation payload
# -----------------------------------------------------------------------------

class SectorState(BaseModel):
    """One of the nine city sectors."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: SectorCategory
    structural_integrity: float = Field(default=100.0, ge=0, le=100)
    hazard_level: float = Field(default=0.0, ge=0, le=100)
    active_event_id: str | None = None


class SystemState(BaseModel):
    """
    The sole mutable simulation payload.

    "Mutable" in the game sense only: every engine function returns a new
    SystemState and leaves its input untouched.
    """

    model_config = ConfigDict(frozen=True)

    global_panic: float = Field(default=0.0, ge=0, le=100)
    global_power: float = Field(default=100.0, ge=0, le=100)
    global_network: float = Field(default=100.0, ge=0, le=100)
    sectors: tuple[SectorState, ...] = ()

    def sector(self, sector_id: str) -> SectorState | None:
        """Look up a sector by id."""
        for sector in self.sectors:
            if sector.id == sector_id:
                return sector
        return None


class GameEvent(BaseModel):
    """A disaster that struck one sector. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    severity: Severity
    target_sector_id: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ActionCost(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource: Literal["global_panic", "global_power", "global_network"]
    amount: float


class Action(BaseModel):
    """Static catalog entry for a role-gated action."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str
    cooldown_seconds: int
    role: RoleType
    target_kind: TargetKind
    cost: ActionCost | None = None


# -----------------------------------------------------------------------------
# Session aggregate
# -----------------------------------------------------------------------------

class GameSession(BaseModel):
    """
    The authoritative aggregate.

    Exactly one authority holds the live copy per lobby code. Participants
    hold a replica that is overwritten wholesale on every broadcast.
    """

    model_config = ConfigDict(frozen=True)

    phase: GamePhase = GamePhase.LOBBY
    round: int = 1
    time_remaining: int = 90
    system: SystemState = Field(default_factory=SystemState)
    events: tuple[GameEvent, ...] = ()
    lobby_code: str = ""
    last_tick_at: float = 0.0
    outcome_reason: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.phase in (GamePhase.GAME_OVER, GamePhase.VICTORY)
