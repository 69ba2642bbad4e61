"""State models, reference data and the event bus.

The authoritative store lives in `state.session`; it is not re-exported here
because it depends on the engine, which in turn reads this package.
"""

from .schema import (
    Action,
    ActionCost,
    GameEvent,
    GamePhase,
    GameSession,
    Player,
    RoleType,
    SectorCategory,
    SectorState,
    Severity,
    SystemState,
    TargetKind,
)
from .catalog import (
    ACTIONS,
    ESSENTIAL_ROLES,
    SUPPORT_ROLES,
    actions_for_role,
    get_action,
    initial_system_state,
)
from .roles import auto_assign_roles
from .event_bus import BusEvent, EventBus, EventType

__all__ = [
    # Schema
    "Action",
    "ActionCost",
    "GameEvent",
    "GamePhase",
    "GameSession",
    "Player",
    "RoleType",
    "SectorCategory",
    "SectorState",
    "Severity",
    "SystemState",
    "TargetKind",
    # Catalog
    "ACTIONS",
    "ESSENTIAL_ROLES",
    "SUPPORT_ROLES",
    "actions_for_role",
    "get_action",
    "initial_system_state",
    # Roles
    "auto_assign_roles",
    # Event Bus
    "BusEvent",
    "EventBus",
    "EventType",
]
