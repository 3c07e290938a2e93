"""Unit tests for the owner state cache."""

import pytest

from lifesignal_relay.cache.state_cache import StateCache
from lifesignal_relay.domain.models import OwnerRecord

from tests.helpers.scenario import OWNER, OTHER_OWNER, FakeClock


def _record(grace: int = 3600, deceased: bool = False) -> OwnerRecord:
    return OwnerRecord(grace_interval_seconds=grace, is_deceased=deceased, exists=True)


@pytest.mark.unit
class TestStateCache:
    """Test StateCache behavior."""

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache):
        assert await cache.get(OWNER) is None

    @pytest.mark.asyncio
    async def test_put_then_get_is_case_insensitive(self, cache):
        await cache.put(OWNER.upper().replace("0X", "0x"), _record())

        record = await cache.get(OWNER)
        assert record is not None
        assert record.grace_interval_seconds == 3600

    @pytest.mark.asyncio
    async def test_put_stamps_last_update_with_clock(self, clock, cache):
        await cache.put(OWNER, OwnerRecord(3600, False, True, last_update=0.0))

        record = await cache.get(OWNER)
        assert record.last_update == clock.now

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, cache):
        """Mutating a returned record never changes the cached one."""
        await cache.put(OWNER, _record())

        record = await cache.get(OWNER)
        record.is_deceased = True

        again = await cache.get(OWNER)
        assert again.is_deceased is False

    @pytest.mark.asyncio
    async def test_last_write_wins(self, cache):
        await cache.put(OWNER, _record(grace=100))
        await cache.put(OWNER, _record(grace=200, deceased=True))

        record = await cache.get(OWNER)
        assert record.grace_interval_seconds == 200
        assert record.is_deceased is True

    @pytest.mark.asyncio
    async def test_evict_expired_removes_only_stale_entries(self):
        clock = FakeClock()
        cache = StateCache(ttl_seconds=300, clock=clock)
        await cache.put(OWNER, _record())
        clock.advance(200)
        await cache.put(OTHER_OWNER, _record())
        clock.advance(150)

        evicted = await cache.evict_expired()

        assert evicted == 1
        assert await cache.get(OWNER) is None
        assert await cache.get(OTHER_OWNER) is not None
        assert cache.size() == 1

    @pytest.mark.asyncio
    async def test_entry_exactly_at_ttl_is_kept(self):
        clock = FakeClock()
        cache = StateCache(ttl_seconds=300, clock=clock)
        await cache.put(OWNER, _record())
        clock.advance(300)

        assert await cache.evict_expired() == 0

    @pytest.mark.asyncio
    async def test_is_fresh(self, clock, cache):
        await cache.put(OWNER, _record())
        record = await cache.get(OWNER)
        assert cache.is_fresh(record)

        clock.advance(301)
        assert not cache.is_fresh(record)

    @pytest.mark.asyncio
    async def test_invalidate(self, cache):
        await cache.put(OWNER, _record())

        assert await cache.invalidate(OWNER) is True
        assert await cache.invalidate(OWNER) is False
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_invalid_address_rejected(self, cache):
        with pytest.raises(ValueError):
            await cache.get("not-an-address")

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, cache):
        await cache.put(OWNER, _record())

        snapshot = await cache.snapshot()
        snapshot[OWNER].grace_interval_seconds = 1

        record = await cache.get(OWNER)
        assert record.grace_interval_seconds == 3600
