"""
Replication protocol: connection status machine and shared node behavior.

    IDLE → CONNECTING → CONNECTED → (ERROR | IDLE)

Every process in a game is a GameNode. The authority (net/authority.py)
owns the live session and broadcasts snapshots; participants
(net/participant.py) replace their replica with each snapshot they receive.
Both expose the same upward contract: `session`, `players`, `status`,
`status_error`, and STATE_REPLACED / STATUS_CHANGED events on their bus.

Design principles:
- Broadcasts are full snapshots. Applying one is a pure assignment.
- Snapshots carry a sequence number; anything older than the last applied
  snapshot is discarded, so reordered delivery can't roll a replica back.
- Nodes are constructed explicitly and own their timers; close() releases
  everything they started.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from pydantic import BaseModel

from ..config import EntropyConfig
from ..engine.scheduler import CooldownTracker, TickScheduler
from ..state.catalog import COOLDOWN_RESET_ACTION_ID, get_action
from ..state.event_bus import EventBus, EventType
from ..state.schema import GamePhase, GameSession, Player
from ..state.session import generate_player_id
from .messages import GameTick, LobbyState
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


VALID_TRANSITIONS: dict[ConnectionStatus, set[ConnectionStatus]] = {
    ConnectionStatus.IDLE: {ConnectionStatus.CONNECTING},
    ConnectionStatus.CONNECTING: {
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
        ConnectionStatus.IDLE,
    },
    ConnectionStatus.CONNECTED: {ConnectionStatus.ERROR, ConnectionStatus.IDLE},
    ConnectionStatus.ERROR: {ConnectionStatus.IDLE, ConnectionStatus.CONNECTING},
}


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------

class ProtocolError(Exception):
    """Error in the replication protocol."""
    pass


class InvalidTransitionError(ProtocolError):
    def __init__(self, current: ConnectionStatus, attempted: ConnectionStatus):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot move from {current.value} to {attempted.value}.")


class ConnectFailedError(ProtocolError):
    """Session establishment failed; the node is in ERROR."""
    pass


class ConnectTimeoutError(ConnectFailedError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"No response within {timeout:g}s.")


class NotConnectedError(ProtocolError):
    def __init__(self, status: ConnectionStatus):
        self.status = status
        super().__init__(f"Not connected (status {status.value}).")


class RequestTimeoutError(ProtocolError):
    def __init__(self, kind: str, timeout: float):
        self.kind = kind
        self.timeout = timeout
        super().__init__(f"{kind} timed out after {timeout:g}s.")


class RequestRejectedError(ProtocolError):
    """The authority answered a request with a failure."""
    pass


class CooldownActiveError(ProtocolError):
    def __init__(self, action_id: str, remaining: int):
        self.action_id = action_id
        self.remaining = remaining
        super().__init__(f"{action_id} is cooling down ({remaining}s left).")


# -----------------------------------------------------------------------------
# Node base
# -----------------------------------------------------------------------------

class GameNode:
    """
    State shared by authority and participant nodes.

    Args:
        transport: Message delivery for this node
        config: Timings and limits
        bus: Event bus for upward notifications (a fresh one by default)
        player_id: This node's player identity (generated when omitted)
    """

    def __init__(
        self,
        transport: Transport,
        config: EntropyConfig | None = None,
        bus: EventBus | None = None,
        player_id: str | None = None,
    ):
        self.transport = transport
        self.config = config or EntropyConfig()
        self.bus = bus or EventBus()
        self.player_id = player_id or generate_player_id()
        self.cooldowns = CooldownTracker()

        self._status = ConnectionStatus.IDLE
        self._status_error: str | None = None
        self._session: GameSession | None = None
        self._players: list[Player] = []
        self._last_seq = -1
        self._cooldown_timer = TickScheduler(
            self._tick_cooldowns,
            self.config.cooldown_interval,
            name="cooldown",
        )

    # ─── Upward contract ─────────────────────────────────────────

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def status_error(self) -> str | None:
        return self._status_error

    @property
    def session(self) -> GameSession | None:
        return self._session

    @property
    def players(self) -> list[Player]:
        return list(self._players)

    @property
    def last_seq(self) -> int:
        return self._last_seq

    @property
    def me(self) -> Player | None:
        for player in self._players:
            if player.id == self.player_id:
                return player
        return None

    # ─── Replica ─────────────────────────────────────────────────

    def apply_broadcast(self, message: LobbyState | GameTick) -> bool:
        """
        Replace the local replica with a broadcast snapshot.

        Returns:
            False if the broadcast is older than the last one applied
        """
        if message.seq < self._last_seq:
            logger.debug(f"Discarding stale broadcast {message.seq} (have {self._last_seq})")
            self.bus.emit(
                EventType.STALE_BROADCAST,
                lobby_code=message.session.lobby_code,
                seq=message.seq,
                last_seq=self._last_seq,
            )
            return False

        self._last_seq = message.seq
        self._session = message.session
        if isinstance(message, LobbyState):
            self._players = list(message.players)

        self.bus.emit(
            EventType.STATE_REPLACED,
            lobby_code=message.session.lobby_code,
            session=self._session,
            players=self.players,
            seq=message.seq,
        )
        return True

    # ─── Status machine ──────────────────────────────────────────

    def _set_status(self, status: ConnectionStatus, error: str | None = None) -> None:
        if status == self._status:
            self._status_error = error
            return
        if status not in VALID_TRANSITIONS[self._status]:
            raise InvalidTransitionError(self._status, status)

        self._status = status
        self._status_error = error
        if error:
            logger.warning(f"Status {status.value}: {error}")
        else:
            logger.debug(f"Status {status.value}")
        self.bus.emit(EventType.STATUS_CHANGED, status=status, error=error)

    async def _connect(self, rendezvous_key: str, as_authority: bool) -> None:
        """
        Establish the transport channel with the configured timeout.

        Raises:
            ConnectTimeoutError: No answer in time
            ConnectFailedError: Collision, unreachable rendezvous, closed channel
        """
        self._set_status(ConnectionStatus.CONNECTING)
        self.transport.on_message(self._on_message)
        self.transport.on_peer_left(self._on_peer_left)

        try:
            await asyncio.wait_for(
                self.transport.connect(rendezvous_key, as_authority=as_authority),
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError:
            error = ConnectTimeoutError(self.config.connect_timeout)
            self._set_status(ConnectionStatus.ERROR, str(error))
            raise error from None
        except TransportError as e:
            self._set_status(ConnectionStatus.ERROR, str(e))
            raise ConnectFailedError(str(e)) from e

        self._set_status(ConnectionStatus.CONNECTED)
        await self._cooldown_timer.start()

    async def _release(self) -> None:
        """Stop timers, unsubscribe and disconnect. Status is left to the caller."""
        await self._cooldown_timer.stop()
        self.transport.on_message(None)
        self.transport.on_peer_left(None)
        await self.transport.disconnect()

    async def close(self) -> None:
        """Tear the node down and return to IDLE."""
        await self._release()
        self._set_status(ConnectionStatus.IDLE)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    # ─── Cooldowns (cosmetic, never authoritative) ───────────────

    async def _tick_cooldowns(self) -> None:
        if self._session is not None and self._session.phase == GamePhase.PLAYING:
            self.cooldowns.tick()

    def _check_cooldown(self, action_id: str) -> None:
        remaining = self.cooldowns.remaining(action_id)
        if remaining > 0:
            raise CooldownActiveError(action_id, remaining)

    def _start_cooldown(self, action_id: str) -> None:
        action = get_action(action_id)
        if action is None:
            return
        if action.id == COOLDOWN_RESET_ACTION_ID:
            self.cooldowns.reset(keep=action.id)
        self.cooldowns.start(action.id, action.cooldown_seconds)

    # ─── Subclass hooks ──────────────────────────────────────────

    async def _on_message(self, message: BaseModel, sender: str) -> None:
        raise NotImplementedError

    async def _on_peer_left(self, peer_id: str) -> None:
        raise NotImplementedError
