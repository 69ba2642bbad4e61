"""
Static reference data: sectors, roles, actions, disaster templates.

Loaded once at import; nothing in here changes during a session.
"""

from typing import NamedTuple

from .schema import (
    Action,
    ActionCost,
    RoleType,
    SectorCategory,
    SectorState,
    Severity,
    SystemState,
    TargetKind,
)


SECTOR_COUNT = 9

INITIAL_SECTORS: tuple[SectorState, ...] = (
    SectorState(id="s1", name="Core Reactor", category=SectorCategory.POWER),
    SectorState(id="s2", name="Med-Block Alpha", category=SectorCategory.MEDICAL),
    SectorState(id="s3", name="Comms Spire", category=SectorCategory.NETWORK),
    SectorState(id="s4", name="Habitation Ring A", category=SectorCategory.RESIDENTIAL),
    SectorState(id="s5", name="Habitation Ring B", category=SectorCategory.RESIDENTIAL),
    SectorState(id="s6", name="Command Center", category=SectorCategory.COMMAND),
    SectorState(id="s7", name="Industrial Zone", category=SectorCategory.INDUSTRIAL),
    SectorState(id="s8", name="Transit Hub", category=SectorCategory.INDUSTRIAL),
    SectorState(id="s9", name="Outer Airlocks", category=SectorCategory.INDUSTRIAL),
)


def initial_system_state() -> SystemState:
    """Fresh city: no panic, full power and network, every sector intact."""
    return SystemState(
        global_panic=0.0,
        global_power=100.0,
        global_network=100.0,
        sectors=INITIAL_SECTORS,
    )


# -----------------------------------------------------------------------------
# Roles
# -----------------------------------------------------------------------------

ESSENTIAL_ROLES: tuple[RoleType, ...] = (
    RoleType.COMMANDER,
    RoleType.ENGINEER,
    RoleType.BIO_SEC,
    RoleType.COMMS,
)
SUPPORT_ROLES: tuple[RoleType, ...] = (RoleType.SECURITY, RoleType.LOGISTICS)

# The only role that may be held by more than one player
FALLBACK_ROLE = RoleType.SECURITY

ROLE_DESCRIPTIONS: dict[RoleType, str] = {
    RoleType.COMMANDER: "Strategic oversight. Authority to trigger city-wide lockdowns.",
    RoleType.ENGINEER: "Maintains Core Reactor and sector structural integrity.",
    RoleType.BIO_SEC: "Manages medical hazards and containment protocols.",
    RoleType.COMMS: "Maintains network uplinks and manages public information.",
    RoleType.SECURITY: "Suppresses riots in habitation zones. High physical risk.",
    RoleType.LOGISTICS: "Emergency supply routing. Boosts efficiency of other roles.",
}


# -----------------------------------------------------------------------------
# Actions (two per role)
# -----------------------------------------------------------------------------

ACTIONS: tuple[Action, ...] = (
    # COMMANDER
    Action(
        id="cmd_lockdown", role=RoleType.COMMANDER, label="City Lockdown",
        description="Reduces Panic significantly. High Power cost.",
        cooldown_seconds=30, target_kind=TargetKind.GLOBAL,
        cost=ActionCost(resource="global_power", amount=20),
    ),
    Action(
        id="cmd_rally", role=RoleType.COMMANDER, label="Rally Troops",
        description="Boosts Sector Integrity slightly.",
        cooldown_seconds=15, target_kind=TargetKind.GLOBAL,
    ),
    # ENGINEER
    Action(
        id="eng_reinforce", role=RoleType.ENGINEER, label="Reinforce Sector",
        description="Repairs Structure in damaged sectors.",
        cooldown_seconds=10, target_kind=TargetKind.SECTOR,
    ),
    Action(
        id="eng_overcharge", role=RoleType.ENGINEER, label="Reactor Overcharge",
        description="Restores Global Power. Risks damage.",
        cooldown_seconds=20, target_kind=TargetKind.GLOBAL,
    ),
    # BIO_SEC
    Action(
        id="bio_cleanse", role=RoleType.BIO_SEC, label="Decon Sweep",
        description="Reduces Hazard levels in sectors.",
        cooldown_seconds=12, target_kind=TargetKind.SECTOR,
    ),
    Action(
        id="bio_quarantine", role=RoleType.BIO_SEC, label="Quarantine",
        description="Stops hazard spread but increases Panic.",
        cooldown_seconds=18, target_kind=TargetKind.SECTOR,
    ),
    # COMMS
    Action(
        id="com_broadcast", role=RoleType.COMMS, label="Calm Broadcast",
        description="Reduces Global Panic.",
        cooldown_seconds=10, target_kind=TargetKind.GLOBAL,
    ),
    Action(
        id="com_reboot", role=RoleType.COMMS, label="Network Reboot",
        description="Restores Global Network.",
        cooldown_seconds=25, target_kind=TargetKind.GLOBAL,
    ),
    # SECURITY
    Action(
        id="sec_suppress", role=RoleType.SECURITY, label="Riot Suppression",
        description="Forcefully lowers panic in a sector.",
        cooldown_seconds=15, target_kind=TargetKind.SECTOR,
    ),
    Action(
        id="sec_checkpoint", role=RoleType.SECURITY, label="Secure Checkpoint",
        description="Prevents events from spreading.",
        cooldown_seconds=20, target_kind=TargetKind.SECTOR,
    ),
    # LOGISTICS
    Action(
        id="log_supply", role=RoleType.LOGISTICS, label="Supply Drop",
        description="Instantly refreshes cooldowns for others.",
        cooldown_seconds=45, target_kind=TargetKind.GLOBAL,
    ),
    Action(
        id="log_reroute", role=RoleType.LOGISTICS, label="Energy Reroute",
        description="Move power to specific sectors.",
        cooldown_seconds=10, target_kind=TargetKind.SECTOR,
    ),
)

_ACTIONS_BY_ID: dict[str, Action] = {action.id: action for action in ACTIONS}

# Resets every other cooldown on the submitting peer
COOLDOWN_RESET_ACTION_ID = "log_supply"


def get_action(action_id: str) -> Action | None:
    """Look up a catalog action by id."""
    return _ACTIONS_BY_ID.get(action_id)


def actions_for_role(role: RoleType | None) -> list[Action]:
    """Actions a role grants, in catalog order."""
    if role is None:
        return []
    return [action for action in ACTIONS if action.role == role]


# -----------------------------------------------------------------------------
# Disasters
# -----------------------------------------------------------------------------

ANY_CATEGORY = "any"


class DisasterTemplate(NamedTuple):
    title: str
    description: str
    severity: Severity
    target: SectorCategory | str  # a category, or ANY_CATEGORY


DISASTER_TEMPLATES: tuple[DisasterTemplate, ...] = (
    DisasterTemplate("Reactor Leak", "Radiation spike detected.", Severity.CRITICAL, SectorCategory.POWER),
    DisasterTemplate("Riots", "Civil unrest escalation.", Severity.MEDIUM, SectorCategory.RESIDENTIAL),
    DisasterTemplate("Structure Fire", "Fire containment failing.", Severity.MEDIUM, SectorCategory.INDUSTRIAL),
    DisasterTemplate("Bio-Outbreak", "Pathogen detected.", Severity.CRITICAL, SectorCategory.MEDICAL),
    DisasterTemplate("Signal Jamming", "External interference.", Severity.LOW, SectorCategory.NETWORK),
    DisasterTemplate("Sabotage", "Command systems compromised.", Severity.CRITICAL, SectorCategory.COMMAND),
)
