import json

from app.stores.fast_cache import FastCache
from conftest import FakeRedis, run


def test_set_get_and_ttl():
    redis = FakeRedis()
    cache = FastCache(redis)

    async def scenario():
        await cache.set_with_ttl("reference:AAPL", {"ticker": "AAPL"}, 60)
        await cache.set_with_ttl("earnings:from:2024-01-01", [1, 2], None)
        return await cache.get("reference:AAPL"), await cache.get("missing")

    hit, miss = run(scenario())

    assert hit == {"ticker": "AAPL"}
    assert miss is None
    assert redis.ttls["reference:AAPL"] == 60
    assert redis.ttls["earnings:from:2024-01-01"] is None


def test_get_many_keeps_key_order_and_skips_corrupt_payloads():
    redis = FakeRedis()
    redis.data["a"] = json.dumps(1)
    redis.data["b"] = "{not json"
    cache = FastCache(redis)

    assert run(cache.get_many(["a", "b", "c"])) == [1, None, None]
    assert run(cache.get_many([])) == []


def test_delete_pattern():
    redis = FakeRedis()
    cache = FastCache(redis)

    async def scenario():
        for key in ("news:AAPL::2", "news:AAPL::50", "news:MSFT::50", "logo:AAPL"):
            await cache.set_with_ttl(key, [], 10)
        return await cache.delete_pattern("news:AAPL:*")

    assert run(scenario()) == 2
    assert sorted(redis.data) == ["logo:AAPL", "news:MSFT::50"]


def test_redis_errors_behave_as_misses():
    redis = FakeRedis()
    redis.fail = True
    cache = FastCache(redis)

    async def scenario():
        await cache.set_with_ttl("k", {"v": 1}, 10)
        return (
            await cache.get("k"),
            await cache.get_many(["k", "j"]),
            await cache.delete("k"),
            await cache.scan("*"),
            await cache.ping(),
        )

    assert run(scenario()) == (None, [None, None], 0, [], False)
