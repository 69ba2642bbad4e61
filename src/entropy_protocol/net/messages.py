"""
Wire messages exchanged between authority and participants.

A closed tagged union on `type`. Broadcasts carry full snapshots plus a
monotonically increasing `seq` so a replica can drop anything older than
what it already applied. Requests may carry a caller-generated `msg_id`;
the authority answers those with a Response carrying the same id.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..state.schema import GameSession, Player


class JoinRequest(BaseModel):
    type: Literal["JOIN_REQUEST"] = "JOIN_REQUEST"
    player_id: str
    name: str
    msg_id: str | None = None


class LobbyState(BaseModel):
    """Full roster + session snapshot."""
    type: Literal["LOBBY_STATE"] = "LOBBY_STATE"
    seq: int
    players: list[Player]
    session: GameSession


class StartGame(BaseModel):
    type: Literal["START_GAME"] = "START_GAME"
    msg_id: str | None = None


class PlayerAction(BaseModel):
    type: Literal["PLAYER_ACTION"] = "PLAYER_ACTION"
    action_id: str
    player_id: str
    target_sector_id: str | None = None
    msg_id: str | None = None


class GameTick(BaseModel):
    """Full session snapshot after a tick or an applied action."""
    type: Literal["GAME_TICK"] = "GAME_TICK"
    seq: int
    session: GameSession


class Response(BaseModel):
    """Reply to a request that carried a msg_id."""
    type: Literal["RESPONSE"] = "RESPONSE"
    msg_id: str
    success: bool
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


Message = Annotated[
    Union[JoinRequest, LobbyState, StartGame, PlayerAction, GameTick, Response],
    Field(discriminator="type"),
]

REQUEST_TYPES = (JoinRequest, StartGame, PlayerAction)
BROADCAST_TYPES = (LobbyState, GameTick)

_adapter: TypeAdapter[Message] = TypeAdapter(Message)


class MessageDecodeError(ValueError):
    """Inbound payload is not a valid message."""
    pass


def encode_message(message: BaseModel) -> str:
    """Serialize a message to JSON text."""
    return message.model_dump_json()


def decode_message(raw: str | bytes | dict) -> BaseModel:
    """
    Parse JSON text (or an already-decoded dict) into a message.

    Raises:
        MessageDecodeError: Unknown type or invalid fields
    """
    try:
        if isinstance(raw, dict):
            return _adapter.validate_python(raw)
        return _adapter.validate_json(raw)
    except ValidationError as e:
        raise MessageDecodeError(f"Invalid message: {e.error_count()} error(s)") from e
