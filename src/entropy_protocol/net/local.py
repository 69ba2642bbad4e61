"""
Same-process transport.

LocalHub plays the part of a shared broadcast medium: peers bind identities
on it, link to the authority, and exchange JSON-encoded messages through
per-peer inbound queues. Each peer drains its own queue in a reader task,
so handlers never run re-entrantly inside a sender's call stack.

A non-zero drop rate loses messages at random, which is how the protocol's
heartbeat and join retries get exercised without a real network.
"""

import asyncio
import logging
import random
from uuid import uuid4

from pydantic import BaseModel

from .messages import MessageDecodeError, decode_message, encode_message
from .transport import (
    MessageHandler,
    PeerLeftHandler,
    PeerUnavailableError,
    RendezvousCollisionError,
    TransportClosedError,
)

logger = logging.getLogger(__name__)

_MESSAGE = "message"
_PEER_LEFT = "peer_left"


class LocalHub:
    """
    Shared medium for LocalTransport peers.

    Args:
        drop_rate: Probability that any single delivery is lost
        rng: Random source for drops
    """

    def __init__(self, drop_rate: float = 0.0, rng: random.Random | None = None):
        self.drop_rate = drop_rate
        self._rng = rng or random.Random()
        self._peers: dict[str, "LocalTransport"] = {}
        self._links: dict[str, set[str]] = {}
        self.delivered = 0
        self.dropped = 0

    def is_bound(self, peer_id: str) -> bool:
        return peer_id in self._peers

    def peers(self) -> list[str]:
        return list(self._peers)

    def links(self, peer_id: str) -> set[str]:
        return set(self._links.get(peer_id, set()))

    async def settle(self, max_rounds: int = 50) -> None:
        """Wait until every bound peer has handled everything queued for it."""
        for _ in range(max_rounds):
            transports = list(self._peers.values())
            for transport in transports:
                await transport._queue.join()
            await asyncio.sleep(0)
            if all(t._queue.empty() for t in self._peers.values()):
                return

    # ─── Used by LocalTransport ──────────────────────────────────

    def _bind(self, peer_id: str, transport: "LocalTransport") -> None:
        if peer_id in self._peers:
            raise RendezvousCollisionError(peer_id)
        self._peers[peer_id] = transport
        self._links[peer_id] = set()

    def _link(self, a: str, b: str) -> None:
        self._links.setdefault(a, set()).add(b)
        self._links.setdefault(b, set()).add(a)

    def _unbind(self, peer_id: str) -> None:
        self._peers.pop(peer_id, None)
        for other in self._links.pop(peer_id, set()):
            self._links.get(other, set()).discard(peer_id)
            transport = self._peers.get(other)
            if transport is not None:
                transport._enqueue(_PEER_LEFT, peer_id, None)

    def _deliver(self, sender: str, recipient: str, raw: str) -> None:
        transport = self._peers.get(recipient)
        if transport is None:
            logger.debug(f"Dropped message from {sender}: {recipient} is gone")
            self.dropped += 1
            return
        if self.drop_rate and self._rng.random() < self.drop_rate:
            self.dropped += 1
            return
        self.delivered += 1
        transport._enqueue(_MESSAGE, sender, raw)


class LocalTransport:
    """One peer's endpoint on a LocalHub."""

    def __init__(self, hub: LocalHub):
        self._hub = hub
        self._peer_id: str | None = None
        self._handler: MessageHandler | None = None
        self._left_handler: PeerLeftHandler | None = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._reader: asyncio.Task | None = None
        self._closed = True

    @property
    def peer_id(self) -> str | None:
        return self._peer_id

    @property
    def connected(self) -> bool:
        return not self._closed

    async def connect(self, rendezvous_key: str, *, as_authority: bool) -> None:
        if not self._closed:
            raise TransportClosedError("Transport already connected.")

        if as_authority:
            self._hub._bind(rendezvous_key, self)
            self._peer_id = rendezvous_key
        else:
            if not self._hub.is_bound(rendezvous_key):
                raise PeerUnavailableError(rendezvous_key)
            peer_id = f"PEER-{uuid4().hex[:9].upper()}"
            self._hub._bind(peer_id, self)
            self._hub._link(peer_id, rendezvous_key)
            self._peer_id = peer_id

        self._closed = False
        self._reader = asyncio.create_task(self._read_loop(), name=f"local-{self._peer_id}")
        logger.debug(f"Local peer {self._peer_id} connected")

    async def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._peer_id is not None:
            self._hub._unbind(self._peer_id)

        reader, self._reader = self._reader, None
        # Called from inside a handler: let the loop exit on its own
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        self._drain()
        logger.debug(f"Local peer {self._peer_id} disconnected")

    async def send_to_all(self, message: BaseModel) -> None:
        if self._closed or self._peer_id is None:
            logger.debug(f"Dropped {type(message).__name__}: transport closed")
            return
        raw = encode_message(message)
        for peer in self._hub.links(self._peer_id):
            self._hub._deliver(self._peer_id, peer, raw)

    async def send_to_one(self, peer_id: str, message: BaseModel) -> None:
        if self._closed or self._peer_id is None:
            logger.debug(f"Dropped {type(message).__name__}: transport closed")
            return
        self._hub._deliver(self._peer_id, peer_id, encode_message(message))

    def on_message(self, handler: MessageHandler | None) -> None:
        self._handler = handler

    def on_peer_left(self, handler: PeerLeftHandler | None) -> None:
        self._left_handler = handler

    # ─── Internals ───────────────────────────────────────────────

    def _enqueue(self, kind: str, peer: str, raw: str | None) -> None:
        if not self._closed:
            self._queue.put_nowait((kind, peer, raw))

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def _read_loop(self) -> None:
        while not self._closed:
            kind, peer, raw = await self._queue.get()
            try:
                if kind == _MESSAGE and self._handler is not None:
                    await self._handler(decode_message(raw), peer)
                elif kind == _PEER_LEFT and self._left_handler is not None:
                    await self._left_handler(peer)
            except MessageDecodeError as e:
                logger.warning(f"Discarded malformed message from {peer}: {e}")
            except Exception:
                logger.exception(f"Handler failed for message from {peer}")
            finally:
                self._queue.task_done()
