"""Default target selection for SECTOR actions submitted without a target."""

from ..state.schema import Action, RoleType, SectorState, TargetKind


def resolve_target(
    action: Action,
    sectors: tuple[SectorState, ...] | list[SectorState],
    role: RoleType | None = None,
) -> str | None:
    """
    Pick a sector deterministically.

    Engineers go for the weakest structure, BioSec for the worst hazard,
    everyone else for the first sector. Ties break by list order (min/max
    return the first extreme they see).

    Args:
        action: The action being resolved
        sectors: Current sectors in catalog order
        role: Role driving the heuristic, defaults to the action's role

    Returns:
        Sector id, or None for GLOBAL actions or an empty sector list
    """
    if action.target_kind != TargetKind.SECTOR or not sectors:
        return None

    role = role or action.role
    if role == RoleType.ENGINEER:
        return min(sectors, key=lambda s: s.structural_integrity).id
    if role == RoleType.BIO_SEC:
        return max(sectors, key=lambda s: s.hazard_level).id
    return sectors[0].id
