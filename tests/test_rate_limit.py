import pytest

from gallery_accounts.errors import RateLimited
from gallery_accounts.security.rate_limit import RedisRateLimiter, enforce_rate_limit

from conftest import AllowAllLimiter


class FakeRedis:
    def __init__(self, result=1):
        self.result = result
        self.calls = []

    async def eval(self, script, numkeys, *args):
        self.calls.append((numkeys, args))
        return self.result


async def test_enforce_rate_limit_charges_every_key():
    limiter = AllowAllLimiter()
    limiter.blocked.add("rl:a")

    with pytest.raises(RateLimited) as exc:
        await enforce_rate_limit(limiter, "rl:a", "rl:b")

    assert exc.value.status_code == 429
    assert limiter.keys == ["rl:a", "rl:b"]


async def test_enforce_rate_limit_allows():
    limiter = AllowAllLimiter()
    await enforce_rate_limit(limiter, "rl:a", "rl:b")
    assert limiter.keys == ["rl:a", "rl:b"]


async def test_redis_limiter_passes_bucket_parameters():
    redis = FakeRedis(result=1)
    limiter = RedisRateLimiter(redis, capacity=5, refill_per_sec=0.1)

    assert await limiter.allow("rl:login:ip:10.0.0.1") is True

    [(numkeys, args)] = redis.calls
    assert numkeys == 1
    assert args[0] == "rl:login:ip:10.0.0.1"
    assert args[1:3] == (5, 0.1)


async def test_redis_limiter_denies_on_empty_bucket():
    limiter = RedisRateLimiter(FakeRedis(result=0), capacity=5, refill_per_sec=0.1)
    assert await limiter.allow("rl:x") is False
