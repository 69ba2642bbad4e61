"""
Rendezvous broker.

A small FastAPI service that lets peers find each other by identity and
relays their messages. It never looks inside the payloads: game state lives
on the authority peer, the broker only moves frames.

Frames (JSON objects, `kind` discriminates):

    peer → broker   {"kind": "link", "to": <peer>}
                    {"kind": "relay", "to": <peer>, "data": <message json>}
                    {"kind": "ping"}
    broker → peer   {"kind": "open", "peer_id": <self>}
                    {"kind": "linked", "peer": <peer>}
                    {"kind": "peer-joined", "peer": <peer>}
                    {"kind": "relay", "from": <peer>, "data": <message json>}
                    {"kind": "peer-left", "peer": <peer>}
                    {"kind": "error", "code": <code>, "peer": <peer>, "detail": ...}
                    {"kind": "pong"}

Endpoints:
- WS  /peers/{peer_id}  - bind an identity and exchange frames
- GET /health           - liveness
- GET /peers            - bound identities
"""

import json
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

UNAVAILABLE_ID = "unavailable-id"
PEER_UNAVAILABLE = "peer-unavailable"
INVALID_FRAME = "invalid-frame"

CLOSE_ID_TAKEN = 4409


class RendezvousRegistry:
    """Bound identities and the links between them."""

    def __init__(self):
        self.peers: dict[str, WebSocket] = {}
        self.links: dict[str, set[str]] = {}

    def is_bound(self, peer_id: str) -> bool:
        return peer_id in self.peers

    def register(self, peer_id: str, websocket: WebSocket) -> bool:
        """Bind an identity. Returns False if it is already taken."""
        if peer_id in self.peers:
            return False
        self.peers[peer_id] = websocket
        self.links[peer_id] = set()
        return True

    def unregister(self, peer_id: str) -> set[str]:
        """Drop an identity. Returns the peers that were linked to it."""
        self.peers.pop(peer_id, None)
        linked = self.links.pop(peer_id, set())
        for other in linked:
            self.links.get(other, set()).discard(peer_id)
        return linked

    def link(self, a: str, b: str) -> bool:
        if a not in self.peers or b not in self.peers:
            return False
        self.links[a].add(b)
        self.links[b].add(a)
        return True

    async def send(self, peer_id: str, frame: dict) -> None:
        """Best-effort send; a dead socket just loses the frame."""
        websocket = self.peers.get(peer_id)
        if websocket is None:
            logger.debug(f"Dropped {frame.get('kind')} frame for unknown peer {peer_id}")
            return
        try:
            await websocket.send_json(frame)
        except Exception as e:
            logger.debug(f"Send to {peer_id} failed: {e}")

    async def handle_frame(self, source: str, frame: dict) -> None:
        kind = frame.get("kind")

        if kind == "link":
            target = frame.get("to", "")
            if not self.link(source, target):
                await self.send(source, {
                    "kind": "error",
                    "code": PEER_UNAVAILABLE,
                    "peer": target,
                    "detail": f"No peer bound as {target}",
                })
                return
            await self.send(source, {"kind": "linked", "peer": target})
            await self.send(target, {"kind": "peer-joined", "peer": source})

        elif kind == "relay":
            target = frame.get("to", "")
            await self.send(target, {
                "kind": "relay",
                "from": source,
                "data": frame.get("data"),
            })

        elif kind == "ping":
            await self.send(source, {"kind": "pong"})

        else:
            await self.send(source, {
                "kind": "error",
                "code": INVALID_FRAME,
                "detail": f"Unknown frame kind: {kind}",
            })


def create_app(registry: RendezvousRegistry | None = None) -> FastAPI:
    """Build the broker application."""
    registry = registry or RendezvousRegistry()
    app = FastAPI(title="Entropy Protocol Broker")
    app.state.registry = registry

    @app.get("/health")
    async def health_check():
        return {"ok": True, "service": "entropy-broker", "peers": len(registry.peers)}

    @app.get("/peers")
    async def list_peers():
        return {"ok": True, "peers": sorted(registry.peers)}

    @app.websocket("/peers/{peer_id}")
    async def peer_socket(websocket: WebSocket, peer_id: str):
        await websocket.accept()

        if not registry.register(peer_id, websocket):
            logger.info(f"Rejected duplicate identity {peer_id}")
            await websocket.send_json({
                "kind": "error",
                "code": UNAVAILABLE_ID,
                "peer": peer_id,
                "detail": f"{peer_id} is already bound",
            })
            await websocket.close(code=CLOSE_ID_TAKEN)
            return

        logger.info(f"Peer {peer_id} bound. Total peers: {len(registry.peers)}")
        await websocket.send_json({"kind": "open", "peer_id": peer_id})

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from {peer_id}: {raw[:100]}")
                    await registry.send(peer_id, {
                        "kind": "error",
                        "code": INVALID_FRAME,
                        "detail": "Frames must be JSON objects",
                    })
                    continue
                if not isinstance(frame, dict):
                    await registry.send(peer_id, {
                        "kind": "error",
                        "code": INVALID_FRAME,
                        "detail": "Frames must be JSON objects",
                    })
                    continue
                await registry.handle_frame(peer_id, frame)

        except WebSocketDisconnect:
            pass
        finally:
            linked = registry.unregister(peer_id)
            logger.info(f"Peer {peer_id} left. Total peers: {len(registry.peers)}")
            for other in linked:
                await registry.send(other, {"kind": "peer-left", "peer": peer_id})

    return app
