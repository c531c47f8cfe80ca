import pytest

from starhistory.api import RateLimiter


@pytest.mark.asyncio
async def test_acquire_spends_tokens():
    limiter = RateLimiter(capacity=10, refill_per_min=1)

    await limiter.acquire(3)
    await limiter.acquire(2)

    assert limiter.tokens == pytest.approx(5, abs=0.1)


@pytest.mark.asyncio
async def test_acquire_waits_for_refill(monkeypatch):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)
        limiter._tokens += seconds * limiter._refill_rate

    monkeypatch.setattr("starhistory.api.rate_limiting.sleep", fake_sleep)
    limiter = RateLimiter(capacity=2, refill_per_min=60)

    await limiter.acquire(2)
    await limiter.acquire(1)

    assert len(slept) == 1
    assert slept[0] == pytest.approx(1, abs=0.1)


@pytest.mark.asyncio
async def test_settle_charges_or_refunds_difference():
    limiter = RateLimiter(capacity=100, refill_per_min=1)
    await limiter.acquire(1)

    await limiter.settle(estimated=1, actual=5)
    assert limiter.tokens == pytest.approx(95, abs=0.1)

    await limiter.settle(estimated=50, actual=1)
    # refunds never overfill the bucket
    assert limiter.tokens == pytest.approx(100, abs=0.1)
