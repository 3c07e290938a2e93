"""Unit tests for the polling event subscription."""

import asyncio

import pytest

from lifesignal_relay.core.enums import EventKind, REGISTRY_EVENT_KINDS
from lifesignal_relay.domain.errors import RpcError, StreamError
from lifesignal_relay.ledger.memory_impl import MemoryRegistryLedger

from tests.helpers.scenario import CONTACT_1, OWNER, SEVEN_DAYS
from tests.helpers.waiting import wait_until


async def _drain(subscription, received):
    async for event in subscription:
        received.append(event)


class _Background:
    """Runs a subscription in a task until the test is done with it."""

    def __init__(self, subscription):
        self.subscription = subscription
        self.received = []
        self.task = asyncio.create_task(_drain(subscription, self.received))

    async def close(self):
        self.subscription.close()
        self.task.cancel()
        await asyncio.gather(self.task, return_exceptions=True)


@pytest.mark.unit
class TestEventSubscription:
    """Test EventSubscription."""

    @pytest.mark.asyncio
    async def test_delivers_events_in_ledger_order(self, registry):
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
        registry.add_contact(OWNER, CONTACT_1)
        registry.send_heartbeat(OWNER)

        background = _Background(registry.subscribe(REGISTRY_EVENT_KINDS, from_block=1))
        try:
            await wait_until(lambda: len(background.received) == 3)
        finally:
            await background.close()

        kinds = [event.kind for event in background.received]
        assert kinds == [EventKind.OWNER_REGISTERED, EventKind.CONTACT_ADDED, EventKind.HEARTBEAT_SENT]
        blocks = [event.block_number for event in background.received]
        assert blocks == sorted(blocks)

    @pytest.mark.asyncio
    async def test_filters_by_kind(self, registry):
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
        registry.add_contact(OWNER, CONTACT_1)
        registry.send_heartbeat(OWNER)

        checkpoints = []
        background = _Background(
            registry.subscribe([EventKind.HEARTBEAT_SENT], from_block=1, on_checkpoint=checkpoints.append)
        )
        try:
            await wait_until(lambda: checkpoints == [3])
        finally:
            await background.close()

        assert [event.kind for event in background.received] == [EventKind.HEARTBEAT_SENT]

    @pytest.mark.asyncio
    async def test_without_start_block_only_new_events_are_delivered(self, registry):
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)

        subscription = registry.subscribe(REGISTRY_EVENT_KINDS)
        background = _Background(subscription)
        try:
            await wait_until(lambda: subscription.cursor == 2)
            registry.send_heartbeat(OWNER)
            await wait_until(lambda: len(background.received) == 1)
        finally:
            await background.close()

        assert background.received[0].kind == EventKind.HEARTBEAT_SENT

    @pytest.mark.asyncio
    async def test_checkpoint_per_block_range(self, clock):
        registry = MemoryRegistryLedger(clock=clock, poll_interval=0.005, max_block_range=1)
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
        registry.mine_empty_blocks(1)
        registry.send_heartbeat(OWNER)

        checkpoints = []
        background = _Background(
            registry.subscribe(REGISTRY_EVENT_KINDS, from_block=1, on_checkpoint=checkpoints.append)
        )
        try:
            await wait_until(lambda: checkpoints == [1, 2, 3])
        finally:
            await background.close()

        assert len(background.received) == 2

    @pytest.mark.asyncio
    async def test_transport_failure_surfaces_as_stream_error(self, registry):
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
        registry.fail_next("fetch_events", RpcError("connection reset"))
        subscription = registry.subscribe(REGISTRY_EVENT_KINDS, from_block=1)

        with pytest.raises(StreamError, match="connection reset") as exc_info:
            async for _ in subscription:
                pass

        assert exc_info.value.ledger == "registry"
        assert subscription.cursor == 1
        assert subscription.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_resumes_from_unchanged_cursor(self, registry):
        """No event is lost across a dropped connection."""
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
        registry.send_heartbeat(OWNER)
        registry.fail_next("get_block_number", RpcError("node restarting"))
        subscription = registry.subscribe(REGISTRY_EVENT_KINDS, from_block=1)

        with pytest.raises(StreamError):
            async for _ in subscription:
                pass

        background = _Background(subscription)
        try:
            await wait_until(lambda: len(background.received) == 2)
        finally:
            await background.close()

        assert [event.kind for event in background.received] == [
            EventKind.OWNER_REGISTERED,
            EventKind.HEARTBEAT_SENT,
        ]
        assert subscription.reconnects == 1
        assert subscription.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_close_stops_iteration(self, registry):
        subscription = registry.subscribe(REGISTRY_EVENT_KINDS, from_block=1)
        subscription.close()

        received = [event async for event in subscription]

        assert received == []
        assert subscription.closed
