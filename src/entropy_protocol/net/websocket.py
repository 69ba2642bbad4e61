"""
WebSocket transport: peers talk through the rendezvous broker.

Each peer holds one websocket to the broker (net/broker.py). The authority
binds the lobby's rendezvous key as its identity; participants bind a random
identity and link to the authority. Messages travel as relay frames.
"""

import asyncio
import json
import logging
from urllib.parse import quote
from uuid import uuid4

import websockets
from pydantic import BaseModel

from .broker import PEER_UNAVAILABLE, UNAVAILABLE_ID
from .messages import MessageDecodeError, decode_message, encode_message
from .transport import (
    MessageHandler,
    PeerLeftHandler,
    PeerUnavailableError,
    RendezvousCollisionError,
    RendezvousUnreachableError,
    TransportClosedError,
    TransportError,
)

logger = logging.getLogger(__name__)

_OPEN = "open"


def _link_key(peer: str) -> str:
    return f"link:{peer}"


class WebSocketTransport:
    """
    Broker-relayed transport.

    Args:
        broker_url: Base websocket URL of the broker, e.g. ws://localhost:8765
        peer_id: Identity to bind as a participant (random when omitted)
    """

    def __init__(self, broker_url: str, peer_id: str | None = None):
        self.broker_url = broker_url.rstrip("/")
        self._requested_id = peer_id
        self._peer_id: str | None = None
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._links: set[str] = set()
        self._waiters: dict[str, asyncio.Future] = {}
        self._handler: MessageHandler | None = None
        self._left_handler: PeerLeftHandler | None = None
        self._closed = True

    @property
    def peer_id(self) -> str | None:
        return self._peer_id

    @property
    def links(self) -> set[str]:
        return set(self._links)

    async def connect(self, rendezvous_key: str, *, as_authority: bool) -> None:
        if not self._closed:
            raise TransportClosedError("Transport already connected.")

        peer_id = rendezvous_key if as_authority else (
            self._requested_id or f"PEER-{uuid4().hex[:9].upper()}"
        )
        url = f"{self.broker_url}/peers/{quote(peer_id)}"

        try:
            self._ws = await websockets.connect(url)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise RendezvousUnreachableError(self.broker_url, str(e)) from e

        self._closed = False
        try:
            opened = self._expect(_OPEN)
            self._reader = asyncio.create_task(self._read_loop(), name=f"ws-{peer_id}")
            await opened
            self._peer_id = peer_id
            logger.info(f"Bound {peer_id} on {self.broker_url}")

            if not as_authority:
                linked = self._expect(_link_key(rendezvous_key))
                await self._send_frame({"kind": "link", "to": rendezvous_key})
                await linked
                self._links.add(rendezvous_key)
                logger.info(f"Linked to {rendezvous_key}")
        except BaseException:
            await self.disconnect()
            raise

    async def disconnect(self) -> None:
        if self._closed and self._ws is None:
            return
        self._closed = True
        self._links.clear()
        self._fail_waiters(TransportClosedError())

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing websocket: {e}")

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def send_to_all(self, message: BaseModel) -> None:
        data = encode_message(message)
        for peer in list(self._links):
            await self._send_frame({"kind": "relay", "to": peer, "data": data})

    async def send_to_one(self, peer_id: str, message: BaseModel) -> None:
        await self._send_frame({"kind": "relay", "to": peer_id, "data": encode_message(message)})

    def on_message(self, handler: MessageHandler | None) -> None:
        self._handler = handler

    def on_peer_left(self, handler: PeerLeftHandler | None) -> None:
        self._left_handler = handler

    # ─── Internals ───────────────────────────────────────────────

    def _expect(self, key: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._waiters[key] = future
        return future

    def _resolve(self, key: str, error: TransportError | None = None) -> None:
        future = self._waiters.pop(key, None)
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(True)

    def _fail_waiters(self, error: TransportError) -> None:
        for key in list(self._waiters):
            self._resolve(key, error)

    async def _send_frame(self, frame: dict) -> None:
        if self._closed or self._ws is None:
            logger.debug(f"Dropped {frame.get('kind')} frame: transport closed")
            return
        try:
            await self._ws.send(json.dumps(frame))
        except websockets.exceptions.ConnectionClosed:
            logger.debug(f"Dropped {frame.get('kind')} frame: connection closed")

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from broker: {str(raw)[:100]}")
                    continue
                await self._dispatch(frame)
        except websockets.exceptions.ConnectionClosed:
            logger.info("Broker connection closed")
        finally:
            self._fail_waiters(TransportClosedError("Connection to broker closed."))
            if not self._closed:
                self._closed = True
                lost, self._links = self._links, set()
                for peer in lost:
                    await self._notify_left(peer)

    async def _dispatch(self, frame: dict) -> None:
        kind = frame.get("kind")
        peer = frame.get("peer", "")

        if kind == "open":
            self._resolve(_OPEN)

        elif kind == "linked":
            self._resolve(_link_key(peer))

        elif kind == "error":
            code = frame.get("code")
            if code == UNAVAILABLE_ID:
                self._resolve(_OPEN, RendezvousCollisionError(peer))
            elif code == PEER_UNAVAILABLE:
                self._resolve(_link_key(peer), PeerUnavailableError(peer))
            else:
                logger.warning(f"Broker error {code}: {frame.get('detail')}")

        elif kind == "peer-joined":
            self._links.add(peer)

        elif kind == "peer-left":
            self._links.discard(peer)
            await self._notify_left(peer)

        elif kind == "relay":
            sender = frame.get("from", "")
            try:
                message = decode_message(frame.get("data") or "")
            except MessageDecodeError as e:
                logger.warning(f"Discarded malformed message from {sender}: {e}")
                return
            if self._handler is not None:
                try:
                    await self._handler(message, sender)
                except Exception:
                    logger.exception(f"Handler failed for message from {sender}")

    async def _notify_left(self, peer: str) -> None:
        if self._left_handler is None:
            return
        try:
            await self._left_handler(peer)
        except Exception:
            logger.exception(f"Peer-left handler failed for {peer}")
