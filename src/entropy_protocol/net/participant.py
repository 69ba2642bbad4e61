"""
The participant node: a replica of the authority's session.

A participant never mutates game state. It sends intents (join, actions),
replaces its replica with every snapshot the authority broadcasts, and
keeps knocking with its join request until it sees itself on the roster.
"""

import asyncio
import logging
from uuid import uuid4

from pydantic import BaseModel

from ..config import EntropyConfig
from ..engine.scheduler import TickScheduler
from ..state.event_bus import EventBus, EventType
from ..state.schema import GamePhase, Player
from .messages import GameTick, JoinRequest, LobbyState, PlayerAction, Response, StartGame
from .protocol import (
    ConnectionStatus,
    GameNode,
    NotConnectedError,
    RequestRejectedError,
    RequestTimeoutError,
)
from .transport import Transport

logger = logging.getLogger(__name__)

DISCONNECTED_FROM_HOST = "Disconnected from host"


class ParticipantNode(GameNode):
    """
    Client side of a game.

    Args:
        transport: Message delivery for this node
        config: Timings and limits
        bus: Event bus for upward notifications
        player_id: This participant's identity (kept across re-joins)
    """

    def __init__(
        self,
        transport: Transport,
        config: EntropyConfig | None = None,
        bus: EventBus | None = None,
        player_id: str | None = None,
    ):
        super().__init__(transport, config, bus, player_id)
        self.name = ""
        self.lobby_code = ""
        self.authority_peer: str | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._knock = TickScheduler(self._knock_beat, self.config.heartbeat_interval, name="knock")

    @property
    def joined(self) -> bool:
        return self.me is not None

    # ─── Intents ─────────────────────────────────────────────────

    async def join(self, lobby_code: str, name: str) -> list[Player]:
        """
        Connect to a lobby and wait for the authority to accept us.

        A lost join request is retried by the knock loop, so a timeout only
        fails the join if we never made it onto the roster.

        Raises:
            ConnectFailedError: Host unreachable
            RequestRejectedError: Lobby full or game already running
            RequestTimeoutError: No acceptance in time
        """
        self.name = name
        self.lobby_code = lobby_code.upper()
        key = self.config.rendezvous_key(self.lobby_code)

        await self._connect(key, as_authority=False)
        self.authority_peer = key
        await self._knock.start()

        try:
            await self.request(JoinRequest(player_id=self.player_id, name=name), kind="Join")
        except RequestRejectedError as e:
            await self._fail(str(e))
            raise
        except RequestTimeoutError as e:
            if not self.joined:
                await self._fail(str(e))
                raise

        logger.info(f"Joined lobby {self.lobby_code} as {name}")
        return self.players

    async def submit_action(
        self,
        action_id: str,
        target_sector_id: str | None = None,
        wait: bool = False,
    ) -> dict | None:
        """
        Send an action intent to the authority.

        With wait=False the intent is fire-and-forget and the result shows
        up in the next broadcast. With wait=True the authority's verdict is
        returned, or RequestRejectedError raised.

        Raises:
            NotConnectedError: Not connected
            CooldownActiveError: Action still cooling down locally
        """
        self._require_connected()
        self._check_cooldown(action_id)

        message = PlayerAction(
            action_id=action_id,
            player_id=self.player_id,
            target_sector_id=target_sector_id,
        )
        result = None
        if wait:
            result = await self.request(message, kind="Action")
        else:
            await self.transport.send_to_all(message)

        self._start_cooldown(action_id)
        return result

    async def request(self, message: BaseModel, kind: str = "Request") -> dict:
        """
        Send a request and wait for the matching Response.

        Returns:
            The response data

        Raises:
            RequestRejectedError: The authority answered with a failure
            RequestTimeoutError: No answer within request_timeout
        """
        self._require_connected()
        msg_id = uuid4().hex
        message = message.model_copy(update={"msg_id": msg_id})
        future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future

        try:
            await self.transport.send_to_all(message)
            return await asyncio.wait_for(future, timeout=self.config.request_timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(kind, self.config.request_timeout) from None
        finally:
            self._pending.pop(msg_id, None)

    async def close(self) -> None:
        await self._knock.stop()
        self._fail_pending(NotConnectedError(ConnectionStatus.IDLE))
        await super().close()

    # ─── Inbound ─────────────────────────────────────────────────

    async def _on_message(self, message: BaseModel, sender: str) -> None:
        if isinstance(message, Response):
            self._resolve(message)
        elif isinstance(message, (LobbyState, GameTick)):
            self.apply_broadcast(message)
        elif isinstance(message, StartGame):
            self.bus.emit(EventType.GAME_STARTED, lobby_code=self.lobby_code)
        else:
            logger.debug(f"Ignoring {type(message).__name__} from {sender}")

    async def _on_peer_left(self, peer_id: str) -> None:
        if peer_id != self.authority_peer:
            return
        logger.warning(f"Host {peer_id} went away")
        await self._fail(DISCONNECTED_FROM_HOST)

    def _resolve(self, response: Response) -> None:
        future = self._pending.get(response.msg_id)
        if future is None or future.done():
            logger.debug(f"Unmatched response {response.msg_id}")
            return
        if response.success:
            future.set_result(response.data)
        else:
            future.set_exception(RequestRejectedError(response.error or "Request rejected."))

    # ─── Internals ───────────────────────────────────────────────

    async def _knock_beat(self) -> None:
        session = self._session
        if self.joined or (session is not None and session.phase != GamePhase.LOBBY):
            return
        await self.transport.send_to_all(JoinRequest(player_id=self.player_id, name=self.name))

    async def _fail(self, error: str) -> None:
        """Drop the channel and park in ERROR with a description."""
        await self._knock.stop()
        self._fail_pending(NotConnectedError(ConnectionStatus.ERROR))
        await self._release()
        self._set_status(ConnectionStatus.ERROR, error)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

    def _require_connected(self) -> None:
        if self.status != ConnectionStatus.CONNECTED:
            raise NotConnectedError(self.status)
