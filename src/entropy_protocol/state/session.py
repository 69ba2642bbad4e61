"""
Authoritative session store.

Owns the live GameSession and roster on the authority. Every mutation goes
through this class and is validated before anything changes: a rejected
request raises a SessionError and leaves the session exactly as it was.

The store is synchronous and not thread-safe. The authority node serializes
calls into it; see net/authority.py.
"""

from __future__ import annotations

import logging
import random
import string
import time
from typing import Callable
from uuid import uuid4

from ..config import EntropyConfig
from ..engine.bots import BotPolicy, make_random_policy
from ..engine.simulation import (
    SimulationError,
    apply_action,
    apply_decay,
    apply_event_impact,
    check_game_over,
    roll_event,
)
from ..engine.targeting import resolve_target
from .catalog import get_action, initial_system_state
from .event_bus import EventBus, EventType
from .roles import auto_assign_roles
from .schema import PHASE_TRANSITIONS, GamePhase, GameSession, Player, SystemState

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Policy errors
# -----------------------------------------------------------------------------

class SessionError(Exception):
    """A request was rejected by session policy. State is unchanged."""
    pass


class NoSessionError(SessionError):
    def __init__(self):
        super().__init__("No session has been created.")


class GameInProgressError(SessionError):
    def __init__(self):
        super().__init__("Game already in progress")


class LobbyFullError(SessionError):
    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"Lobby full ({capacity} players)")


class InvalidPhaseError(SessionError):
    """Operation not valid in the current phase."""
    def __init__(self, current: GamePhase, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} during {current.value} phase.")


class NotEnoughPlayersError(SessionError):
    def __init__(self, have: int, need: int):
        self.have = have
        self.need = need
        super().__init__(f"Need at least {need} players to start (have {have}).")


class UnknownPlayerError(SessionError):
    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Unknown player: {player_id}")


class UnknownActionError(SessionError):
    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Unknown action: {action_id}")


class RoleMismatchError(SessionError):
    def __init__(self, action_id: str, role: str | None):
        self.action_id = action_id
        self.role = role
        super().__init__(f"Role {role} cannot use {action_id}.")


class InvalidTargetError(SessionError):
    def __init__(self, detail: str):
        super().__init__(detail)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

LOBBY_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_lobby_code(length: int = 4, rng: random.Random | None = None) -> str:
    """Short shareable code, e.g. 'K7QX'."""
    rng = rng or random
    return "".join(rng.choice(LOBBY_CODE_ALPHABET) for _ in range(length))


def generate_player_id() -> str:
    return f"USER-{uuid4().hex[:9].upper()}"


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

class SessionStore:
    """
    The authority's in-memory session and roster.

    Args:
        config: Rules and limits
        rng: Random source for events, bots and generated names
        clock: Wall-clock source in seconds
        bot_policy: Decides automated players' moves
        bus: Optional bus that receives roster and game events
    """

    def __init__(
        self,
        config: EntropyConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        bot_policy: BotPolicy | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config or EntropyConfig()
        self._rng = rng or random.Random()
        self._clock = clock
        self._bot_policy = bot_policy or make_random_policy(self.config.bot_action_chance)
        self._bus = bus
        self._session: GameSession | None = None
        self._players: list[Player] = []

    # ─── Read access ─────────────────────────────────────────────

    @property
    def session(self) -> GameSession | None:
        return self._session

    @property
    def players(self) -> list[Player]:
        return list(self._players)

    @property
    def lobby_code(self) -> str:
        return self._session.lobby_code if self._session else ""

    def snapshot(self) -> tuple[GameSession, list[Player]]:
        """Current session and roster, safe to hand to a broadcaster."""
        return self._require_session(), list(self._players)

    def get_player(self, player_id: str) -> Player | None:
        for player in self._players:
            if player.id == player_id:
                return player
        return None

    # ─── Lobby ───────────────────────────────────────────────────

    def create_session(
        self,
        host_name: str,
        host_id: str | None = None,
        lobby_code: str | None = None,
    ) -> tuple[str, GameSession]:
        """
        Start a fresh lobby with the host as its only (authority) player.

        Returns:
            (lobby_code, session)
        """
        code = (lobby_code or generate_lobby_code(self.config.lobby_code_length, self._rng)).upper()
        host = Player(
            id=host_id or generate_player_id(),
            name=host_name,
            is_authority=True,
        )
        self._session = GameSession(
            phase=GamePhase.LOBBY,
            round=1,
            time_remaining=self.config.game_duration,
            system=initial_system_state(),
            lobby_code=code,
        )
        self._players = [host]
        self._assign_roles()
        logger.info(f"Lobby {code} created by {host_name}")
        self._emit(EventType.PLAYER_JOINED, player=self._players[0])
        return code, self._session

    def join(self, player_id: str, name: str) -> list[Player]:
        """
        Add a player, or rename one already in the roster.

        Raises:
            GameInProgressError: New player while not in LOBBY
            LobbyFullError: Roster at capacity
        """
        session = self._require_session()

        for index, existing in enumerate(self._players):
            if existing.id == player_id:
                if existing.name != name:
                    self._players[index] = existing.model_copy(update={"name": name})
                    self._emit(EventType.PLAYER_RENAMED, player=self._players[index])
                return self.players

        if session.phase != GamePhase.LOBBY:
            raise GameInProgressError()
        if len(self._players) >= self.config.max_players:
            raise LobbyFullError(self.config.max_players)

        self._players.append(Player(id=player_id, name=name))
        self._assign_roles()
        logger.info(f"{name} joined lobby {session.lobby_code} ({len(self._players)} players)")
        self._emit(EventType.PLAYER_JOINED, player=self.get_player(player_id))
        return self.players

    def add_automated_player(self, name: str | None = None) -> list[Player]:
        """Fill a seat with a bot. Same policy checks as join()."""
        session = self._require_session()
        if session.phase != GamePhase.LOBBY:
            raise GameInProgressError()
        if len(self._players) >= self.config.max_players:
            raise LobbyFullError(self.config.max_players)

        bot = Player(
            id=f"BOT-{uuid4().hex[:5]}",
            name=name or f"UNIT-{self._rng.randint(100, 999)}",
            is_automated=True,
        )
        self._players.append(bot)
        self._assign_roles()
        logger.info(f"Automated player {bot.name} added to lobby {session.lobby_code}")
        self._emit(EventType.PLAYER_JOINED, player=self.get_player(bot.id))
        return self.players

    def mark_departed(self, player_id: str) -> list[Player]:
        """
        Apply the disconnect policy to a player whose peer went away.

        In the lobby the player is removed and their role becomes free for
        the next joiner. Once the game has started the player stays on the
        roster (roles are never reassigned mid-game) and is flagged as
        disconnected.
        """
        session = self._require_session()
        player = self.get_player(player_id)
        if player is None or player.is_authority:
            return self.players

        if session.phase == GamePhase.LOBBY:
            self._players = [p for p in self._players if p.id != player_id]
            logger.info(f"{player.name} left lobby {session.lobby_code}")
        else:
            self._players = [
                p.model_copy(update={"is_connected": False}) if p.id == player_id else p
                for p in self._players
            ]
            logger.info(f"{player.name} disconnected during {session.phase.value}")

        self._emit(EventType.PLAYER_LEFT, player=player, phase=session.phase.value)
        return self.players

    def start(self, now: float | None = None) -> GameSession:
        """
        Move the lobby into PLAYING.

        Raises:
            InvalidPhaseError: Not in LOBBY
            NotEnoughPlayersError: Fewer than min_players on the roster
        """
        session = self._require_session()
        if session.phase != GamePhase.LOBBY:
            raise InvalidPhaseError(session.phase, "start")
        if len(self._players) < self.config.min_players:
            raise NotEnoughPlayersError(len(self._players), self.config.min_players)

        self._assign_roles()
        self._session = self._transition(
            session,
            GamePhase.PLAYING,
            round=1,
            time_remaining=self.config.game_duration,
            last_tick_at=self._clock() if now is None else now,
        )
        logger.info(f"Lobby {session.lobby_code} started with {len(self._players)} players")
        self._emit(EventType.GAME_STARTED, session=self._session)
        return self._session

    # ─── Play ────────────────────────────────────────────────────

    def submit_action(
        self,
        player_id: str,
        action_id: str,
        target_sector_id: str | None = None,
    ) -> GameSession:
        """
        Validate and apply one player's action.

        A missing target for a SECTOR action is resolved with the role's
        default heuristic.

        Raises:
            InvalidPhaseError, UnknownPlayerError, UnknownActionError,
            RoleMismatchError, InvalidTargetError
        """
        session = self._require_session()
        if session.phase != GamePhase.PLAYING:
            raise InvalidPhaseError(session.phase, "submit an action")

        player = self.get_player(player_id)
        if player is None:
            raise UnknownPlayerError(player_id)

        action = get_action(action_id)
        if action is None:
            raise UnknownActionError(action_id)
        if action.role != player.role:
            raise RoleMismatchError(action_id, player.role.value if player.role else None)

        system = session.system
        if target_sector_id is None:
            target_sector_id = resolve_target(action, system.sectors, player.role)
        elif system.sector(target_sector_id) is None:
            raise InvalidTargetError(f"Unknown sector: {target_sector_id}")

        try:
            system = apply_action(system, action, target_sector_id)
        except SimulationError as e:
            raise InvalidTargetError(str(e)) from e

        self._session = session.model_copy(update={"system": system})
        self._emit(
            EventType.ACTION_APPLIED,
            player=player,
            action=action,
            target_sector_id=target_sector_id,
        )
        return self._session

    def advance(self, now: float | None = None) -> GameSession:
        """
        Run every whole simulated second elapsed since the last tick.

        A delivery gap of three seconds runs three full steps. The
        fractional remainder carries over to the next call. Simulation
        stops at the first second that ends the game.
        """
        session = self._require_session()
        if session.phase != GamePhase.PLAYING:
            return session

        now = self._clock() if now is None else now
        elapsed = int(now - session.last_tick_at)
        if elapsed <= 0:
            return session

        system = session.system
        events = session.events
        time_remaining = session.time_remaining
        outcome = GamePhase.PLAYING
        reason = None
        steps = 0
        bots = [p for p in self._players if p.is_automated]

        for _ in range(elapsed):
            steps += 1
            time_remaining = max(0, time_remaining - 1)

            system = apply_decay(system)

            event = roll_event(session.round, system.sectors, self._rng)
            if event is not None:
                events = (event,) + events
                system = apply_event_impact(system, event)
                self._emit(EventType.DISASTER_STRUCK, event=event)

            for bot in bots:
                system = self._run_bot(bot, system)

            check = check_game_over(system)
            if time_remaining == 0:
                outcome = GamePhase.GAME_OVER if check.is_over else GamePhase.VICTORY
                reason = check.reason
            elif check.is_over:
                outcome = GamePhase.GAME_OVER
                reason = check.reason

            if outcome != GamePhase.PLAYING:
                break

        update = {
            "system": system,
            "events": events[: self.config.event_log_limit],
            "time_remaining": time_remaining,
            "last_tick_at": session.last_tick_at + steps,
        }
        if outcome == GamePhase.PLAYING:
            self._session = session.model_copy(update=update)
        else:
            self._session = self._transition(session, outcome, outcome_reason=reason, **update)
            logger.info(
                f"Lobby {session.lobby_code} ended: {outcome.value}"
                + (f" ({reason})" if reason else "")
            )
            self._emit(EventType.GAME_ENDED, phase=outcome, reason=reason)

        return self._session

    # ─── Internals ───────────────────────────────────────────────

    def _run_bot(self, bot: Player, system: SystemState) -> SystemState:
        move = self._bot_policy(bot, system, self._rng)
        if move is None:
            return system
        try:
            return apply_action(system, move.action, move.target_sector_id)
        except SimulationError as e:
            logger.warning(f"Bot {bot.name} move skipped: {e}")
            return system

    def _assign_roles(self) -> None:
        before = {p.id: p.role for p in self._players}
        self._players = auto_assign_roles(self._players)
        for player in self._players:
            if before.get(player.id) is None and player.role is not None:
                self._emit(EventType.ROLE_ASSIGNED, player=player, role=player.role)

    def _transition(self, session: GameSession, to: GamePhase, **update) -> GameSession:
        """Move to a new phase, enforcing forward-only transitions."""
        if to not in PHASE_TRANSITIONS.get(session.phase, set()):
            raise InvalidPhaseError(session.phase, f"transition to {to.value}")
        return session.model_copy(update={"phase": to, **update})

    def _require_session(self) -> GameSession:
        if self._session is None:
            raise NoSessionError()
        return self._session

    def _emit(self, event_type: EventType, **data) -> None:
        if self._bus is not None:
            self._bus.emit(event_type, lobby_code=self.lobby_code, **data)
