"""
Rich rendering for the command-line front end.

Every renderer takes plain replica data (session, roster, status) so the
same views work for the authority and for participants.
"""

from rich.console import Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..engine.scheduler import CooldownTracker
from ..net.protocol import ConnectionStatus, GameNode
from ..state.catalog import actions_for_role
from ..state.schema import GameEvent, GamePhase, GameSession, Player, Severity, SystemState

PANEL_STYLE = "on #001100"

PHASE_COLORS = {
    GamePhase.LOBBY: "cyan",
    GamePhase.PLAYING: "yellow",
    GamePhase.GAME_OVER: "red",
    GamePhase.VICTORY: "green",
}

STATUS_COLORS = {
    ConnectionStatus.IDLE: "dim",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.ERROR: "red",
}

SEVERITY_COLORS = {
    Severity.LOW: "white",
    Severity.MEDIUM: "yellow",
    Severity.CRITICAL: "bold red",
}


def render_status_panel(
    session: GameSession | None,
    status: ConnectionStatus,
    error: str | None = None,
) -> Panel:
    """
    One-line status bar:
    - Lobby code
    - Phase
    - Time remaining
    - Connection status
    """
    status_color = STATUS_COLORS.get(status, "white")
    status_display = f"[{status_color}]{status.value}[/{status_color}]"
    if error:
        status_display += f" [red]({escape(error)})[/red]"

    if session is None:
        parts = ["[dim]No session[/dim]", f"Link: {status_display}"]
    else:
        phase_color = PHASE_COLORS.get(session.phase, "white")
        parts = [
            f"[bold cyan]{escape(session.lobby_code)}[/bold cyan]",
            f"Phase: [{phase_color}]{session.phase.value}[/{phase_color}]",
            f"T-{session.time_remaining:02d}s",
            f"Link: {status_display}",
        ]
        if session.outcome_reason:
            parts.append(f"[bold red]{escape(session.outcome_reason)}[/bold red]")

    return Panel(
        Text.from_markup(" │ ".join(parts)),
        style=PANEL_STYLE,
        border_style="blue",
        padding=(0, 1),
    )


def render_metrics_panel(system: SystemState) -> Panel:
    """City-wide panic, power and network as bars."""
    table = Table.grid(padding=(0, 2))
    table.add_column(justify="left", width=10)
    table.add_column(justify="left")
    table.add_column(justify="right", width=6)

    table.add_row("Panic", create_meter(system.global_panic, invert=True), f"{system.global_panic:.0f}%")
    table.add_row("Power", create_meter(system.global_power), f"{system.global_power:.0f}%")
    table.add_row("Network", create_meter(system.global_network), f"{system.global_network:.0f}%")

    return Panel(
        table,
        title="[bold]CITY[/bold]",
        title_align="left",
        style=PANEL_STYLE,
        border_style="blue",
        padding=(0, 1),
    )


def render_sectors_table(system: SystemState) -> Table:
    table = Table(title="SECTORS", title_justify="left", expand=True, border_style="blue")
    table.add_column("ID", style="dim", width=4)
    table.add_column("Sector", style="cyan")
    table.add_column("Structure")
    table.add_column("Hazard")
    table.add_column("", width=2)

    for sector in system.sectors:
        table.add_row(
            sector.id,
            escape(sector.name),
            create_meter(sector.structural_integrity, width=8),
            create_meter(sector.hazard_level, width=8, invert=True),
            "[red]![/red]" if sector.active_event_id else "",
        )
    return table


def render_roster(players: list[Player], me: str | None = None) -> Panel:
    if not players:
        return Panel(
            Text.from_markup("[dim]Nobody here yet[/dim]"),
            title="[bold]CREW[/bold]",
            title_align="left",
            style=PANEL_STYLE,
            border_style="blue",
        )

    table = Table.grid(padding=(0, 2))
    table.add_column(justify="left", width=18)
    table.add_column(justify="left", width=10)
    table.add_column(justify="left")

    for player in players:
        name = Text(player.name, style="bold" if player.id == me else "")
        tags = []
        if player.is_authority:
            tags.append("[cyan]host[/cyan]")
        if player.is_automated:
            tags.append("[dim]bot[/dim]")
        if not player.is_connected:
            tags.append("[red]offline[/red]")
        table.add_row(name, player.role.value if player.role else "-", " ".join(tags))

    return Panel(
        table,
        title=f"[bold]CREW[/bold] ({len(players)})",
        title_align="left",
        style=PANEL_STYLE,
        border_style="blue",
        padding=(0, 1),
    )


def render_event_log(events: tuple[GameEvent, ...] | list[GameEvent], limit: int = 5) -> Panel:
    lines = []
    for event in list(events)[:limit]:
        color = SEVERITY_COLORS.get(event.severity, "white")
        lines.append(
            f"[dim]{event.timestamp:%H:%M:%S}[/dim] "
            f"[{color}]{escape(event.title)}[/{color}] "
            f"@ {escape(event.target_sector_id)}: {escape(event.description)}"
        )
    body = "\n".join(lines) if lines else "[dim]All quiet[/dim]"
    return Panel(
        Text.from_markup(body),
        title="[bold]EVENTS[/bold]",
        title_align="left",
        style=PANEL_STYLE,
        border_style="blue",
        padding=(0, 1),
    )


def render_action_bar(player: Player | None, cooldowns: CooldownTracker) -> Text:
    """Role actions with their cooldown state."""
    if player is None or player.role is None:
        return Text("No role assigned", style="dim")

    parts = []
    for action in actions_for_role(player.role):
        remaining = cooldowns.remaining(action.id)
        if remaining:
            parts.append(f"[dim]{action.label} ({remaining}s)[/dim]")
        else:
            parts.append(f"[cyan]{action.label}[/cyan]")
    return Text.from_markup(" │ ".join(parts))


def render_node(node: GameNode) -> Group:
    """Full dashboard for one node's replica."""
    session = node.session
    parts = [render_status_panel(session, node.status, node.status_error)]
    if session is not None:
        parts.append(render_metrics_panel(session.system))
        if session.phase != GamePhase.LOBBY:
            parts.append(render_sectors_table(session.system))
            parts.append(render_event_log(session.events))
    parts.append(render_roster(node.players, me=node.player_id))
    if session is not None and session.phase == GamePhase.PLAYING:
        parts.append(render_action_bar(node.me, node.cooldowns))
    return Group(*parts)


# --- Helper Functions ---

def create_meter(value: float, width: int = 10, invert: bool = False) -> str:
    """
    Bar for a 0..100 percentage.
    invert=True colors high values red (panic, hazard).
    """
    filled_count = max(0, min(width, round(value / 100 * width)))
    filled = "▰" * filled_count
    empty = "▱" * (width - filled_count)

    health = 100 - value if invert else value
    if health >= 60:
        color = "green"
    elif health >= 30:
        color = "yellow"
    else:
        color = "red"

    return f"[{color}]{filled}{empty}[/{color}]"
