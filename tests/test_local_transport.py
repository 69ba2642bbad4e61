"""Tests for the same-process transport."""

import random

import pytest

from entropy_protocol.net.local import LocalHub, LocalTransport
from entropy_protocol.net.messages import JoinRequest, StartGame
from entropy_protocol.net.transport import (
    PeerUnavailableError,
    RendezvousCollisionError,
    Transport,
    TransportClosedError,
)

KEY = "ENTROPY-NET-V2-ABCD"


class Inbox:
    """Collects what a transport hands to its handlers."""

    def __init__(self):
        self.messages = []
        self.left = []

    async def on_message(self, message, sender):
        self.messages.append((message, sender))

    async def on_left(self, peer):
        self.left.append(peer)


async def connected_pair(hub: LocalHub):
    host, guest = LocalTransport(hub), LocalTransport(hub)
    host_inbox, guest_inbox = Inbox(), Inbox()
    host.on_message(host_inbox.on_message)
    host.on_peer_left(host_inbox.on_left)
    guest.on_message(guest_inbox.on_message)
    guest.on_peer_left(guest_inbox.on_left)
    await host.connect(KEY, as_authority=True)
    await guest.connect(KEY, as_authority=False)
    return host, guest, host_inbox, guest_inbox


class TestLocalTransport:
    """Test binding, linking and delivery."""

    def test_satisfies_protocol(self):
        assert isinstance(LocalTransport(LocalHub()), Transport)

    @pytest.mark.asyncio
    async def test_round_trip(self):
        hub = LocalHub()
        host, guest, host_inbox, guest_inbox = await connected_pair(hub)

        await guest.send_to_all(JoinRequest(player_id="p1", name="BOB"))
        await hub.settle()
        message, sender = host_inbox.messages[0]
        assert isinstance(message, JoinRequest)
        assert sender == guest.peer_id

        await host.send_to_one(sender, StartGame())
        await hub.settle()
        assert isinstance(guest_inbox.messages[0][0], StartGame)

        await guest.disconnect()
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_link(self):
        hub = LocalHub()
        host = LocalTransport(hub)
        await host.connect(KEY, as_authority=True)
        inboxes = []
        guests = []
        for _ in range(3):
            guest, inbox = LocalTransport(hub), Inbox()
            guest.on_message(inbox.on_message)
            await guest.connect(KEY, as_authority=False)
            guests.append(guest)
            inboxes.append(inbox)

        await host.send_to_all(StartGame())
        await hub.settle()

        assert all(len(inbox.messages) == 1 for inbox in inboxes)
        for guest in guests:
            await guest.disconnect()
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_guests_are_not_linked_to_each_other(self):
        hub = LocalHub()
        host, guest, _, _ = await connected_pair(hub)
        other, other_inbox = LocalTransport(hub), Inbox()
        other.on_message(other_inbox.on_message)
        await other.connect(KEY, as_authority=False)

        await guest.send_to_all(StartGame())
        await hub.settle()

        assert other_inbox.messages == []
        assert hub.links(guest.peer_id) == {KEY}
        for transport in (other, guest, host):
            await transport.disconnect()

    @pytest.mark.asyncio
    async def test_collision(self):
        hub = LocalHub()
        first = LocalTransport(hub)
        await first.connect(KEY, as_authority=True)

        with pytest.raises(RendezvousCollisionError):
            await LocalTransport(hub).connect(KEY, as_authority=True)
        await first.disconnect()

    @pytest.mark.asyncio
    async def test_peer_unavailable(self):
        with pytest.raises(PeerUnavailableError):
            await LocalTransport(LocalHub()).connect(KEY, as_authority=False)

    @pytest.mark.asyncio
    async def test_connect_twice(self):
        hub = LocalHub()
        transport = LocalTransport(hub)
        await transport.connect(KEY, as_authority=True)
        with pytest.raises(TransportClosedError):
            await transport.connect(KEY, as_authority=True)
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_peer_left_notifies_links(self):
        hub = LocalHub()
        host, guest, host_inbox, guest_inbox = await connected_pair(hub)
        guest_id = guest.peer_id

        await guest.disconnect()
        await hub.settle()
        assert host_inbox.left == [guest_id]

        await host.disconnect()
        assert not hub.is_bound(KEY)

    @pytest.mark.asyncio
    async def test_authority_leaving_notifies_guest(self):
        hub = LocalHub()
        host, guest, _, guest_inbox = await connected_pair(hub)

        await host.disconnect()
        await hub.settle()
        assert guest_inbox.left == [KEY]
        await guest.disconnect()

    @pytest.mark.asyncio
    async def test_send_after_disconnect_is_dropped(self):
        hub = LocalHub()
        host, guest, host_inbox, _ = await connected_pair(hub)
        await guest.disconnect()

        await guest.send_to_all(StartGame())
        await hub.settle()
        assert host_inbox.messages == []
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_payload_discarded(self):
        """Garbage on the wire is logged and skipped; later messages still arrive."""
        hub = LocalHub()
        host, guest, host_inbox, _ = await connected_pair(hub)

        hub._deliver(guest.peer_id, KEY, '{"type": "NOPE"}')
        await guest.send_to_all(StartGame())
        await hub.settle()

        assert len(host_inbox.messages) == 1
        await guest.disconnect()
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_reader(self):
        hub = LocalHub()
        host, guest = LocalTransport(hub), LocalTransport(hub)
        received = []

        async def flaky(message, sender):
            received.append(message)
            if len(received) == 1:
                raise RuntimeError("handler broke")

        host.on_message(flaky)
        await host.connect(KEY, as_authority=True)
        await guest.connect(KEY, as_authority=False)

        await guest.send_to_all(StartGame())
        await guest.send_to_all(StartGame())
        await hub.settle()

        assert len(received) == 2
        await guest.disconnect()
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_drop_rate(self):
        hub = LocalHub(drop_rate=1.0, rng=random.Random(1))
        host, guest, host_inbox, _ = await connected_pair(hub)

        for _ in range(5):
            await guest.send_to_all(StartGame())
        await hub.settle()

        assert host_inbox.messages == []
        assert hub.dropped == 5
        await guest.disconnect()
        await host.disconnect()
