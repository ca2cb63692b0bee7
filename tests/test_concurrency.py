"""Tests for the concurrency limiter."""
import asyncio

import pytest

from riskmatch.concurrency import ConcurrencyLimiter


def test_rejects_limit_below_one():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)


async def test_never_exceeds_limit():
    limiter = ConcurrencyLimiter(2)
    in_flight = 0
    peak = 0

    async def work(i):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return i

    results = await asyncio.gather(*(limiter.execute(lambda i=i: work(i)) for i in range(7)))
    assert results == list(range(7))
    assert peak == 2
    assert limiter.running == 0
    assert limiter.waiting == 0


async def test_admits_in_fifo_order():
    limiter = ConcurrencyLimiter(1)
    started = []

    async def work(i):
        started.append(i)
        await asyncio.sleep(0)

    await asyncio.gather(*(limiter.execute(lambda i=i: work(i)) for i in range(5)))
    assert started == [0, 1, 2, 3, 4]


async def test_exception_reaches_caller_and_frees_slot():
    limiter = ConcurrencyLimiter(1)

    async def boom():
        raise RuntimeError("boom")

    async def ok():
        return "ok"

    results = await asyncio.gather(
        limiter.execute(boom),
        limiter.execute(ok),
        return_exceptions=True,
    )
    assert isinstance(results[0], RuntimeError)
    assert results[1] == "ok"
    assert limiter.running == 0


async def test_waiting_count_reflects_queue():
    limiter = ConcurrencyLimiter(1)
    release = asyncio.Event()

    async def blocked():
        await release.wait()

    tasks = [asyncio.create_task(limiter.execute(blocked)) for _ in range(3)]
    await asyncio.sleep(0)
    assert limiter.running == 1
    assert limiter.waiting == 2

    release.set()
    await asyncio.gather(*tasks)
    assert limiter.running == 0


async def test_timeout_raises_and_frees_slot():
    limiter = ConcurrencyLimiter(1, timeout=0.01)

    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        await limiter.execute(slow)
    assert limiter.running == 0


async def test_cancelled_waiter_is_dropped():
    limiter = ConcurrencyLimiter(1)
    release = asyncio.Event()

    async def blocked():
        await release.wait()
        return "done"

    first = asyncio.create_task(limiter.execute(blocked))
    second = asyncio.create_task(limiter.execute(blocked))
    await asyncio.sleep(0)
    second.cancel()
    with pytest.raises(asyncio.CancelledError):
        await second
    assert limiter.waiting == 0

    release.set()
    assert await first == "done"
    assert limiter.running == 0


async def test_waiter_cancelled_while_slot_is_released():
    limiter = ConcurrencyLimiter(1)
    release = asyncio.Event()

    async def blocked():
        await release.wait()
        return "done"

    first = asyncio.create_task(limiter.execute(blocked))
    second = asyncio.create_task(limiter.execute(blocked))
    await asyncio.sleep(0)

    # first finishes in the same tick the queued second is cancelled
    release.set()
    second.cancel()
    assert await first == "done"
    with pytest.raises(asyncio.CancelledError):
        await second
    assert limiter.running == 0
    assert limiter.waiting == 0

    assert await limiter.execute(blocked) == "done"
