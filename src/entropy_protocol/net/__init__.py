"""Wire messages, transports and the replication protocol."""

from .messages import (
    GameTick,
    JoinRequest,
    LobbyState,
    MessageDecodeError,
    PlayerAction,
    Response,
    StartGame,
    decode_message,
    encode_message,
)
from .transport import (
    PeerUnavailableError,
    RendezvousCollisionError,
    RendezvousUnreachableError,
    Transport,
    TransportClosedError,
    TransportError,
)
from .local import LocalHub, LocalTransport
from .websocket import WebSocketTransport
from .protocol import (
    ConnectFailedError,
    ConnectionStatus,
    ConnectTimeoutError,
    CooldownActiveError,
    GameNode,
    InvalidTransitionError,
    NotConnectedError,
    ProtocolError,
    RequestRejectedError,
    RequestTimeoutError,
)
from .authority import AuthorityNode
from .participant import ParticipantNode

__all__ = [
    # Messages
    "GameTick",
    "JoinRequest",
    "LobbyState",
    "MessageDecodeError",
    "PlayerAction",
    "Response",
    "StartGame",
    "decode_message",
    "encode_message",
    # Transports
    "LocalHub",
    "LocalTransport",
    "PeerUnavailableError",
    "RendezvousCollisionError",
    "RendezvousUnreachableError",
    "Transport",
    "TransportClosedError",
    "TransportError",
    "WebSocketTransport",
    # Protocol
    "AuthorityNode",
    "ConnectFailedError",
    "ConnectionStatus",
    "ConnectTimeoutError",
    "CooldownActiveError",
    "GameNode",
    "InvalidTransitionError",
    "NotConnectedError",
    "ParticipantNode",
    "ProtocolError",
    "RequestRejectedError",
    "RequestTimeoutError",
]
