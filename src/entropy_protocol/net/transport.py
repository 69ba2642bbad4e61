"""
Transport adapter contract.

The replication protocol only needs to send a message to one peer or to
everyone it is linked with, and to be told when something arrives or a
peer goes away. Delivery is fire-and-forget: sends on a closed or unready
channel are dropped.

Implementations:
- LocalTransport (net/local.py): same-process channel, used for tests and
  single-process games
- WebSocketTransport (net/websocket.py): peers relayed through the
  rendezvous broker (net/broker.py)
"""

from typing import Awaitable, Callable, Protocol, runtime_checkable

from pydantic import BaseModel


# Handlers receive the decoded message and the sending peer id
MessageHandler = Callable[[BaseModel, str], Awaitable[None]]
PeerLeftHandler = Callable[[str], Awaitable[None]]


class TransportError(Exception):
    """Base class for connection failures."""
    pass


class RendezvousCollisionError(TransportError):
    """Another peer already holds the requested identity."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Lobby code taken ({key}). Try again.")


class PeerUnavailableError(TransportError):
    """Nobody is bound to the rendezvous identity."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Could not reach host {key}.")


class RendezvousUnreachableError(TransportError):
    """The rendezvous point itself (e.g. the broker) could not be reached."""
    def __init__(self, where: str, detail: str = ""):
        self.where = where
        super().__init__(f"Rendezvous unreachable at {where}" + (f": {detail}" if detail else ""))


class TransportClosedError(TransportError):
    """The channel is closed or was never opened."""
    def __init__(self, detail: str = "Transport is not connected."):
        super().__init__(detail)


@runtime_checkable
class Transport(Protocol):
    """
    Abstract message delivery.

    connect() binds `rendezvous_key` as this peer's identity when
    `as_authority` is set; otherwise it binds a fresh identity and links to
    the peer holding `rendezvous_key`.
    """

    @property
    def peer_id(self) -> str | None:
        """This peer's identity once connected."""
        ...

    async def connect(self, rendezvous_key: str, *, as_authority: bool) -> None:
        """Establish the channel. Raises TransportError on failure."""
        ...

    async def disconnect(self) -> None:
        """Close the channel and stop delivering messages."""
        ...

    async def send_to_all(self, message: BaseModel) -> None:
        """Send to every linked peer. Never raises for delivery failures."""
        ...

    async def send_to_one(self, peer_id: str, message: BaseModel) -> None:
        """Send to one peer. Never raises for delivery failures."""
        ...

    def on_message(self, handler: MessageHandler | None) -> None:
        """Register (or clear, with None) the inbound message handler."""
        ...

    def on_peer_left(self, handler: PeerLeftHandler | None) -> None:
        """Register (or clear) the handler for linked peers going away."""
        ...
