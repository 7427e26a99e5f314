import json

import pytest
import time_machine

from edgecache import AsyncInMemoryTier, CacheStore, JSONSerializer, ResponseEnvelope

ENVELOPE = ResponseEnvelope(status=200, headers=(("Content-Type", "application/json"),), body=b'{"id": 42}')


@pytest.mark.anyio
async def test_put_writes_both_tiers(store, fast_tier, durable_tier):
    with time_machine.travel(1_700_000_000, tick=False):
        assert await store.put("v1/key", ENVELOPE)

    assert JSONSerializer().loads(await fast_tier.get("v1/key")) == ENVELOPE

    record = json.loads(await durable_tier.get("v1/key"))
    assert record["expiration"] == (1_700_000_000 + 60) * 1000
    assert JSONSerializer().from_dict(record["data"]) == ENVELOPE


@pytest.mark.anyio
async def test_get_misses_when_both_tiers_are_empty(store):
    assert await store.get("v1/key") is None


@pytest.mark.anyio
async def test_fast_tier_wins(fast_tier, durable_tier):
    store = CacheStore(fast_tier, durable_tier)
    stale = ResponseEnvelope(status=200, headers=(), body=b"durable")
    await durable_tier.put("v1/key", json.dumps({"data": JSONSerializer().to_dict(stale), "expiration": 0}), 0)
    await fast_tier.put("v1/key", JSONSerializer().dumps(ENVELOPE), 60)

    assert await store.get("v1/key") == ENVELOPE


@pytest.mark.anyio
async def test_falls_back_to_durable_tier(store, fast_tier):
    await store.put("v1/key", ENVELOPE)
    fast_tier._cache.clear()

    assert await store.get("v1/key") == ENVELOPE


@pytest.mark.anyio
async def test_falls_back_when_fast_tier_fails(durable_tier, failing_tier):
    store = CacheStore(failing_tier(), durable_tier)
    assert await store.put("v1/key", ENVELOPE)

    assert await store.get("v1/key") == ENVELOPE


@pytest.mark.anyio
async def test_both_tiers_failing_is_a_miss(failing_tier):
    store = CacheStore(failing_tier("fast"), failing_tier("durable"))

    assert await store.get("v1/key") is None
    assert not await store.put("v1/key", ENVELOPE)


@pytest.mark.anyio
async def test_one_failing_tier_does_not_stop_the_other(fast_tier, failing_tier):
    durable = failing_tier()
    store = CacheStore(fast_tier, durable)

    assert await store.put("v1/key", ENVELOPE)

    assert durable.put_calls == 1
    assert "v1/key" in fast_tier


@pytest.mark.anyio
async def test_expired_durable_entry_is_absent(store, fast_tier, durable_tier):
    with time_machine.travel(1_700_000_000, tick=False) as traveller:
        await store.put("v1/key", ENVELOPE, ttl=30)
        fast_tier._cache.clear()

        traveller.shift(29)
        assert await store.get("v1/key") == ENVELOPE

        traveller.shift(2)
        assert await store.get("v1/key") is None

    # the physical record is still there, only its expiration is past
    assert await durable_tier.get("v1/key") is not None


@pytest.mark.anyio
async def test_malformed_payloads_are_misses(fast_tier, durable_tier):
    store = CacheStore(fast_tier, durable_tier)
    await fast_tier.put("v1/key", "{not json", 60)
    await durable_tier.put("v1/key", '{"data": {"headers": "nope", "body": ""}, "expiration": 0}', 0)

    assert await store.get("v1/key") is None


@pytest.mark.anyio
async def test_legacy_entry_without_status(fast_tier, durable_tier):
    store = CacheStore(fast_tier, durable_tier)
    await fast_tier.put("v1/key", '{"headers": [["Content-Type", "text/plain"]], "body": "legacy"}', 60)

    envelope = await store.get("v1/key")

    assert envelope == ResponseEnvelope(status=200, headers=(("Content-Type", "text/plain"),), body=b"legacy")


@pytest.mark.anyio
async def test_read_repair_copies_durable_hit_into_fast_tier(durable_tier):
    fast_tier = AsyncInMemoryTier()
    store = CacheStore(fast_tier, durable_tier, ttl=120, read_repair=True)

    with time_machine.travel(1_700_000_000, tick=False) as traveller:
        await store.put("v1/key", ENVELOPE)
        fast_tier._cache.clear()
        traveller.shift(20)

        assert await store.get("v1/key") == ENVELOPE
        assert await fast_tier.get("v1/key") is not None

        # repaired with the remaining lifetime only
        traveller.shift(100)
        assert await fast_tier.get("v1/key") is None


@pytest.mark.anyio
async def test_no_read_repair_by_default(store, fast_tier):
    await store.put("v1/key", ENVELOPE)
    fast_tier._cache.clear()

    assert await store.get("v1/key") == ENVELOPE
    assert "v1/key" not in fast_tier


@pytest.mark.anyio
async def test_aclose_absorbs_errors(failing_tier):
    class BrokenTier(failing_tier):
        async def aclose(self) -> None:
            raise RuntimeError("cannot close")

    await CacheStore(BrokenTier(), AsyncInMemoryTier()).aclose()
