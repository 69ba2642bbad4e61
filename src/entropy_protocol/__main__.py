"""
Entropy Protocol command line.

Run with:
    python -m entropy_protocol broker
    python -m entropy_protocol host --name ALICE --bots 3 --start
    python -m entropy_protocol join ABCD --name BOB
    python -m entropy_protocol demo
"""

import argparse
import asyncio
import logging
import random
import sys
import time

import uvicorn
from rich.console import Console
from rich.live import Live
from rich.markup import escape

from .config import EntropyConfig, load_config
from .interface.console import render_node
from .net.authority import AuthorityNode
from .net.broker import create_app
from .net.local import LocalHub, LocalTransport
from .net.participant import ParticipantNode
from .net.protocol import ConnectionStatus, GameNode, ProtocolError
from .net.websocket import WebSocketTransport
from .state.catalog import actions_for_role
from .state.schema import GamePhase
from .state.session import SessionError

logger = logging.getLogger(__name__)
console = Console()

REFRESH_INTERVAL = 0.25
AUTOPILOT_CHANCE = 0.3


# -----------------------------------------------------------------------------
# Shared loop
# -----------------------------------------------------------------------------

async def autopilot(node: GameNode, rng: random.Random) -> None:
    """Occasionally fire one of the node's ready role actions."""
    me = node.me
    if me is None or me.role is None or rng.random() > AUTOPILOT_CHANCE:
        return
    ready = [a for a in actions_for_role(me.role) if node.cooldowns.is_ready(a.id)]
    if not ready:
        return
    action = rng.choice(ready)
    try:
        await node.submit_action(action.id)
    except (SessionError, ProtocolError) as e:
        logger.debug(f"Autopilot skipped {action.id}: {e}")


async def watch(
    node: GameNode,
    authority: AuthorityNode | None = None,
    auto_start: bool = False,
    autopilot_nodes: list[GameNode] | None = None,
    rng: random.Random | None = None,
) -> int:
    """Render a node until its game ends or its link fails."""
    rng = rng or random.Random()
    autopilot_nodes = autopilot_nodes or []

    with Live(render_node(node), console=console, refresh_per_second=4) as live:
        while True:
            session = node.session
            if node.status == ConnectionStatus.ERROR:
                live.update(render_node(node))
                return 1

            if authority is not None and auto_start and session is not None:
                if session.phase == GamePhase.LOBBY and len(authority.players) >= authority.config.min_players:
                    await authority.start_game()

            if session is not None and session.phase == GamePhase.PLAYING:
                for pilot in autopilot_nodes:
                    await autopilot(pilot, rng)

            live.update(render_node(node))
            if session is not None and session.is_finished:
                return 0 if session.phase == GamePhase.VICTORY else 2
            await asyncio.sleep(REFRESH_INTERVAL)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def run_broker(config: EntropyConfig, args) -> int:
    console.print("[bold cyan]Entropy Protocol broker[/bold cyan]")
    console.print(f"  Host: {config.broker_host}")
    console.print(f"  Port: {config.broker_port}")
    uvicorn.run(
        create_app(),
        host=config.broker_host,
        port=config.broker_port,
        log_level="debug" if args.debug else "info",
    )
    return 0


async def run_host(config: EntropyConfig, args) -> int:
    node = AuthorityNode(WebSocketTransport(config.broker_url), config)
    try:
        code = await node.open(args.name, lobby_code=args.code)
    except ProtocolError as e:
        console.print(f"[red]Could not open lobby:[/red] {escape(str(e))}")
        return 1

    console.print(f"Lobby code: [bold cyan]{code}[/bold cyan]")
    try:
        for _ in range(args.bots):
            await node.add_bot()
        pilots = [node] if args.auto else []
        return await watch(node, authority=node, auto_start=args.start, autopilot_nodes=pilots)
    finally:
        await node.close()


async def run_join(config: EntropyConfig, args) -> int:
    node = ParticipantNode(WebSocketTransport(config.broker_url), config)
    try:
        await node.join(args.code, args.name)
    except ProtocolError as e:
        console.print(f"[red]Could not join {escape(args.code.upper())}:[/red] {escape(str(e))}")
        await node.close()
        return 1

    try:
        pilots = [node] if args.auto else []
        return await watch(node, autopilot_nodes=pilots)
    finally:
        await node.close()


def scaled_clock(speed: float):
    """Wall clock running `speed` times faster than real time."""
    origin = time.time()
    return lambda: origin + (time.time() - origin) * speed


async def run_demo(config: EntropyConfig, args) -> int:
    """Host, one replica and bots on an in-process hub."""
    config = config.merged(
        tick_interval=1.0 / args.speed,
        cooldown_interval=1.0 / args.speed,
        heartbeat_interval=min(config.heartbeat_interval, 0.5 / args.speed),
    )
    rng = random.Random(args.seed)
    hub = LocalHub(drop_rate=args.drop_rate, rng=rng)

    authority = AuthorityNode(LocalTransport(hub), config, rng=rng, clock=scaled_clock(args.speed))
    participant = ParticipantNode(LocalTransport(hub), config)
    try:
        code = await authority.open("HOST")
        await participant.join(code, args.name)
        for _ in range(max(0, config.min_players - 2)):
            await authority.add_bot()
        await authority.start_game()
        return await watch(participant, autopilot_nodes=[authority, participant], rng=rng)
    finally:
        await participant.close()
        await authority.close()


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="entropy-protocol",
        description="Entropy Protocol - co-op disaster response over a host-authoritative network",
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--broker-url", help="Broker websocket URL (default: ws://localhost:8765)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    broker = commands.add_parser("broker", help="Run the rendezvous broker")
    broker.add_argument("--host", dest="broker_host", help="Host to bind to (default: 0.0.0.0)")
    broker.add_argument("--port", dest="broker_port", type=int, help="Port to bind to (default: 8765)")

    host = commands.add_parser("host", help="Open a lobby and run the simulation")
    host.add_argument("--name", default="HOST", help="Your display name")
    host.add_argument("--code", help="Lobby code to use instead of a random one")
    host.add_argument("--bots", type=int, default=0, help="Automated players to add")
    host.add_argument("--start", action="store_true", help="Start as soon as the lobby is full enough")
    host.add_argument("--auto", action="store_true", help="Let the autopilot play your role")

    join = commands.add_parser("join", help="Join a lobby by code")
    join.add_argument("code", help="Lobby code")
    join.add_argument("--name", default="AGENT", help="Your display name")
    join.add_argument("--auto", action="store_true", help="Let the autopilot play your role")

    demo = commands.add_parser("demo", help="Single-process game with bots")
    demo.add_argument("--name", default="AGENT", help="Replica player's name")
    demo.add_argument("--speed", type=float, default=4.0, help="Simulation speed multiplier")
    demo.add_argument("--seed", type=int, help="Random seed")
    demo.add_argument("--drop-rate", type=float, default=0.0, help="Fraction of messages to lose")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(message)s',
    )

    config = load_config(
        args.config,
        broker_url=args.broker_url,
        broker_host=getattr(args, "broker_host", None),
        broker_port=getattr(args, "broker_port", None),
    )

    if args.command == "broker":
        return run_broker(config, args)

    runners = {"host": run_host, "join": run_join, "demo": run_demo}
    try:
        return asyncio.run(runners[args.command](config, args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
