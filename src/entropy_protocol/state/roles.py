"""Role auto-assignment for the lobby roster."""

from .catalog import ESSENTIAL_ROLES, FALLBACK_ROLE, SUPPORT_ROLES
from .schema import Player, RoleType


def next_open_role(taken: set[RoleType]) -> RoleType:
    """First unheld essential role, then first unheld support role, else the fallback."""
    for role in ESSENTIAL_ROLES:
        if role not in taken:
            return role
    for role in SUPPORT_ROLES:
        if role not in taken:
            return role
    return FALLBACK_ROLE


def auto_assign_roles(players: list[Player]) -> list[Player]:
    """
    Fill role gaps in roster order.

    Players that already hold a role keep it. Running this twice on the same
    roster returns the same mapping.

    Args:
        players: Roster in join order

    Returns:
        New roster list with every player holding a role
    """
    taken = {p.role for p in players if p.role is not None}
    assigned: list[Player] = []

    for player in players:
        if player.role is None:
            role = next_open_role(taken)
            taken.add(role)
            player = player.model_copy(update={"role": role})
        assigned.append(player)

    return assigned
