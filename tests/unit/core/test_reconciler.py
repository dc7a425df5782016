"""
Reconciler Unit Tests
=====================

Peer-list diffing, punch scheduling and cancellation, listening loop
termination.
"""

import asyncio

import pytest

from natchat.errors import SignalingClosed, SignalingError
from natchat.identity import PeerIdentity
from natchat.nat.hole_punch import PROBE_PAYLOAD, HolePuncher, PunchPolicy
from natchat.reconciler import Reconciler
from conftest import wait_for


pytestmark = pytest.mark.asyncio

ME = PeerIdentity("9.9.9.9", "192.168.1.5", "5001")
P1 = PeerIdentity("1.1.1.1", "10.0.0.1", "4001")
P2 = PeerIdentity("2.2.2.2", "10.0.0.2", "4002")
NEIGHBOUR = PeerIdentity("9.9.9.9", "192.168.1.9", "5002")


@pytest.fixture
def reconciler(registry, fake_sender, no_sleep):
    puncher = HolePuncher(fake_sender, PunchPolicy(count=10, interval=0.1), sleep=no_sleep)
    return Reconciler(ME, registry, puncher)


async def drain(reconciler):
    assert await wait_for(lambda: not reconciler.pending_punches, timeout=2.0)


class TestOnUpdate:

    async def test_new_peers_become_candidates_and_get_punched(self, reconciler, registry, fake_sender):
        result = await reconciler.on_update([P1, P2])
        await drain(reconciler)

        assert sorted(result.added) == ["1.1.1.1:4001", "2.2.2.2:4002"]
        assert len(registry) == 2
        assert registry.confirmed_count == 0
        assert fake_sender.sent_to(("1.1.1.1", 4001)) == [PROBE_PAYLOAD] * 10
        assert fake_sender.sent_to(("2.2.2.2", 4002)) == [PROBE_PAYLOAD] * 10

    async def test_same_nat_peer_is_dialled_on_private_address(self, reconciler, registry):
        result = await reconciler.on_update([NEIGHBOUR])

        assert result.added == ["192.168.1.9:5002"]

    async def test_idempotent(self, reconciler, registry, fake_sender):
        await reconciler.on_update([P1, P2])
        await drain(reconciler)
        sends = len(fake_sender.sent)

        result = await reconciler.on_update([P1, P2])
        await drain(reconciler)

        assert result.added == []
        assert result.removed == []
        assert len(registry) == 2
        assert len(fake_sender.sent) == sends

    async def test_departure(self, reconciler, registry):
        await reconciler.on_update([P1, P2])

        result = await reconciler.on_update([P1])

        assert result.removed == ["2.2.2.2:4002"]
        assert await registry.contains("1.1.1.1:4001")
        assert not await registry.contains("2.2.2.2:4002")

    async def test_departure_keeps_confirmation_of_remaining_peer(self, reconciler, registry):
        await reconciler.on_update([P1, P2])
        await registry.confirm("1.1.1.1:4001", ("1.1.1.1", 4001))

        await reconciler.on_update([P1])

        assert (await registry.get("1.1.1.1:4001")).confirmed is True

    async def test_empty_update_clears_registry(self, reconciler, registry):
        await reconciler.on_update([P1, P2])
        await registry.confirm("1.1.1.1:4001", ("1.1.1.1", 4001))

        result = await reconciler.on_update([])

        assert sorted(result.removed) == ["1.1.1.1:4001", "2.2.2.2:4002"]
        assert len(registry) == 0
        assert reconciler.pending_punches == []

    async def test_already_confirmed_address_is_not_punched(self, reconciler, registry, fake_sender):
        """A peer that reached us before its identity arrived needs no burst."""
        await registry.confirm("1.1.1.1:4001", ("1.1.1.1", 4001))

        result = await reconciler.on_update([P1])
        await drain(reconciler)

        assert result.added == []
        assert fake_sender.sent == []

    async def test_unusable_identity_is_skipped(self, reconciler, registry):
        broken = [
            PeerIdentity("", "", ""),
            PeerIdentity("not-an-ip", "", "4000"),
            PeerIdentity("3.3.3.3", "", "port"),
        ]

        result = await reconciler.on_update(broken + [P1])

        assert result.skipped == 3
        assert result.added == ["1.1.1.1:4001"]

    async def test_skipped_identity_cannot_keep_stale_entry(self, reconciler, registry):
        await reconciler.on_update([P1, P2])

        result = await reconciler.on_update([P1, PeerIdentity("2.2.2.2", "", "")])

        assert "2.2.2.2:4002" in result.removed

    async def test_duplicate_identities_collapse(self, reconciler, registry, fake_sender):
        await reconciler.on_update([P1, P1, P1])
        await drain(reconciler)

        assert len(registry) == 1
        assert len(fake_sender.sent) == 10


class TestPunchLifetime:

    @pytest.fixture
    def slow_reconciler(self, registry, fake_sender):
        gate = asyncio.Event()

        async def blocking_sleep(_delay):
            await gate.wait()

        puncher = HolePuncher(fake_sender, PunchPolicy(count=10, interval=0.1), sleep=blocking_sleep)
        return Reconciler(ME, registry, puncher)

    async def test_departure_cancels_running_burst(self, slow_reconciler, fake_sender):
        await slow_reconciler.on_update([P1, P2])
        await asyncio.sleep(0)
        assert sorted(slow_reconciler.pending_punches) == ["1.1.1.1:4001", "2.2.2.2:4002"]

        await slow_reconciler.on_update([P1])
        await asyncio.sleep(0)

        assert slow_reconciler.pending_punches == ["1.1.1.1:4001"]
        assert len(fake_sender.sent_to(("2.2.2.2", 4002))) == 1

    async def test_empty_update_cancels_everything(self, slow_reconciler):
        await slow_reconciler.on_update([P1, P2])
        await asyncio.sleep(0)

        await slow_reconciler.on_update([])
        await asyncio.sleep(0)

        assert slow_reconciler.pending_punches == []

    async def test_stop(self, slow_reconciler):
        await slow_reconciler.on_update([P1, P2])
        await asyncio.sleep(0)

        await slow_reconciler.stop()

        assert slow_reconciler.pending_punches == []


class TestRun:

    async def test_processes_updates_until_stream_ends(self, reconciler, registry):
        async def updates():
            yield [P1, P2]
            yield [P2]

        await reconciler.run(updates())

        assert reconciler.updates_processed == 2
        assert [e.key for e in await registry.entries()] == ["2.2.2.2:4002"]

    async def test_malformed_payload_stops_loop_and_keeps_state(self, reconciler, registry):
        async def updates():
            yield [P1]
            raise SignalingError("Malformed member list")

        await reconciler.run(updates())

        assert reconciler.updates_processed == 1
        assert await registry.contains("1.1.1.1:4001")

    async def test_closed_channel_stops_loop(self, reconciler, registry):
        async def updates():
            yield [P1, P2]
            raise SignalingClosed("WebSocket connection lost")

        await reconciler.run(updates())

        assert len(registry) == 2
