"""
Entropy Protocol - host-authoritative state replication for a co-op
disaster-response game.

One authority node owns the session and runs the simulation; participant
nodes hold replicas that are replaced wholesale by every broadcast.
"""

__version__ = "0.3.0"

from .config import EntropyConfig, load_config
from .state import EventBus, EventType, GamePhase, GameSession, Player, RoleType
from .net import AuthorityNode, ConnectionStatus, LocalHub, LocalTransport, ParticipantNode, WebSocketTransport

__all__ = [
    "AuthorityNode",
    "ConnectionStatus",
    "EntropyConfig",
    "EventBus",
    "EventType",
    "GamePhase",
    "GameSession",
    "LocalHub",
    "LocalTransport",
    "ParticipantNode",
    "Player",
    "RoleType",
    "WebSocketTransport",
    "load_config",
]
