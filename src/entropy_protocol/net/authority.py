"""
The authority node: owns the session, validates intents, broadcasts state.

All mutations (inbound requests, local intents, simulation ticks, peer
departures) run inside one asyncio.Lock, so a broadcast always reflects a
state that no other mutation is halfway through.
"""

import asyncio
import logging
import random
import time
from typing import Callable

from pydantic import BaseModel

from ..config import EntropyConfig
from ..engine.bots import BotPolicy
from ..engine.scheduler import TickScheduler
from ..state.event_bus import EventBus, EventType
from ..state.schema import GamePhase, GameSession, Player
from ..state.session import SessionError, SessionStore
from .messages import GameTick, JoinRequest, LobbyState, PlayerAction, Response, StartGame
from .protocol import GameNode
from .transport import Transport

logger = logging.getLogger(__name__)


class AuthorityNode(GameNode):
    """
    Host side of a game.

    Args:
        transport: Message delivery for this node
        config: Timings and limits
        bus: Event bus for upward notifications
        player_id: The host's player identity
        rng: Random source for the simulation and lobby code
        clock: Wall-clock source in seconds
        bot_policy: Decides automated players' moves
    """

    def __init__(
        self,
        transport: Transport,
        config: EntropyConfig | None = None,
        bus: EventBus | None = None,
        player_id: str | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        bot_policy: BotPolicy | None = None,
    ):
        super().__init__(transport, config, bus, player_id)
        self.store = SessionStore(
            self.config,
            rng=rng,
            clock=clock,
            bot_policy=bot_policy,
            bus=self.bus,
        )
        self._lock = asyncio.Lock()
        self._seq = 0
        self._peers: dict[str, str] = {}  # transport peer id -> player id
        self._simulation = TickScheduler(self.tick, self.config.tick_interval, name="simulation")
        self._heartbeat = TickScheduler(self._heartbeat_beat, self.config.heartbeat_interval, name="heartbeat")

    @property
    def lobby_code(self) -> str:
        return self.store.lobby_code

    @property
    def peers(self) -> dict[str, str]:
        return dict(self._peers)

    @property
    def simulating(self) -> bool:
        return self._simulation.running

    # ─── Local intents ───────────────────────────────────────────

    async def open(self, host_name: str, lobby_code: str | None = None) -> str:
        """
        Create a lobby and bind its rendezvous identity.

        Returns:
            The lobby code participants join with

        Raises:
            ConnectFailedError: Code already taken or rendezvous unreachable
        """
        code, _ = self.store.create_session(host_name, host_id=self.player_id, lobby_code=lobby_code)
        await self._connect(self.config.rendezvous_key(code), as_authority=True)
        logger.info(f"Hosting lobby {code} as {self.transport.peer_id}")

        async with self._lock:
            await self._broadcast_lobby()
        await self._heartbeat.start()
        return code

    async def add_bot(self, name: str | None = None) -> list[Player]:
        """Fill a lobby seat with an automated player."""
        async with self._lock:
            players = self.store.add_automated_player(name)
            await self._broadcast_lobby()
        return players

    async def start_game(self) -> GameSession:
        """
        Move the lobby into PLAYING and start the simulation.

        Raises:
            InvalidPhaseError: Not in LOBBY
            NotEnoughPlayersError: Roster below min_players
        """
        async with self._lock:
            session = self.store.start()
            await self.transport.send_to_all(StartGame())
            await self._broadcast_lobby()

        await self._heartbeat.stop()
        await self._simulation.start()
        return session

    async def submit_action(self, action_id: str, target_sector_id: str | None = None) -> GameSession:
        """
        Apply the host's own action directly.

        Raises:
            CooldownActiveError: Action still cooling down locally
            SessionError: Rejected by the session store
        """
        self._check_cooldown(action_id)
        async with self._lock:
            session = self.store.submit_action(self.player_id, action_id, target_sector_id)
            await self._broadcast_tick()
        self._start_cooldown(action_id)
        return session

    async def tick(self) -> None:
        """Advance the simulation to now and broadcast the result."""
        async with self._lock:
            session = self.store.session
            if session is None or session.phase != GamePhase.PLAYING:
                return
            session = self.store.advance()
            await self._broadcast_tick()

        if session.is_finished:
            await self._simulation.stop()

    async def close(self) -> None:
        await self._simulation.stop()
        await self._heartbeat.stop()
        await super().close()
        self._peers.clear()

    # ─── Inbound ─────────────────────────────────────────────────

    async def _on_message(self, message: BaseModel, sender: str) -> None:
        async with self._lock:
            if isinstance(message, JoinRequest):
                await self._handle_join(message, sender)
            elif isinstance(message, PlayerAction):
                await self._handle_action(message, sender)
            elif isinstance(message, StartGame):
                await self._reject(sender, message.msg_id, "Only the host can start the game.")
            else:
                logger.debug(f"Ignoring {type(message).__name__} from {sender}")

    async def _handle_join(self, message: JoinRequest, sender: str) -> None:
        try:
            players = self.store.join(message.player_id, message.name)
        except SessionError as e:
            logger.info(f"Rejected join from {message.name}: {e}")
            await self._reject(sender, message.msg_id, str(e))
            return

        self._peers[sender] = message.player_id
        await self._broadcast_lobby()
        await self._reply(sender, message.msg_id, {
            "players": [p.model_dump(mode="json") for p in players],
        })

    async def _handle_action(self, message: PlayerAction, sender: str) -> None:
        try:
            session = self.store.submit_action(
                message.player_id,
                message.action_id,
                message.target_sector_id,
            )
        except SessionError as e:
            logger.info(f"Rejected {message.action_id} from {message.player_id}: {e}")
            await self._reject(sender, message.msg_id, str(e))
            return

        await self._broadcast_tick()
        await self._reply(sender, message.msg_id, {"time_remaining": session.time_remaining})

    async def _on_peer_left(self, peer_id: str) -> None:
        async with self._lock:
            player_id = self._peers.pop(peer_id, None)
            if player_id is None or self.store.session is None:
                return
            self.store.mark_departed(player_id)
            await self._broadcast_lobby()

    # ─── Outbound ────────────────────────────────────────────────

    async def _heartbeat_beat(self) -> None:
        async with self._lock:
            session = self.store.session
            if session is not None and session.phase == GamePhase.LOBBY:
                await self._broadcast_lobby(apply_locally=False)

    async def _broadcast_lobby(self, apply_locally: bool = True) -> None:
        session, players = self.store.snapshot()
        self._seq += 1
        message = LobbyState(seq=self._seq, players=players, session=session)
        if apply_locally:
            self.apply_broadcast(message)
        await self.transport.send_to_all(message)

    async def _broadcast_tick(self) -> None:
        session, _ = self.store.snapshot()
        self._seq += 1
        message = GameTick(seq=self._seq, session=session)
        self.apply_broadcast(message)
        await self.transport.send_to_all(message)

    async def _reply(self, peer_id: str, msg_id: str | None, data: dict | None = None) -> None:
        if msg_id is None:
            return
        await self.transport.send_to_one(peer_id, Response(msg_id=msg_id, success=True, data=data or {}))

    async def _reject(self, peer_id: str, msg_id: str | None, error: str) -> None:
        self.bus.emit(EventType.REQUEST_REJECTED, lobby_code=self.lobby_code, peer=peer_id, error=error)
        if msg_id is None:
            return
        await self.transport.send_to_one(peer_id, Response(msg_id=msg_id, success=False, error=error))
