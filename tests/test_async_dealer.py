import asyncio
import time

import pytest

from tokendealer import (
    AllTokensExhaustedError,
    AsyncTokenDealer,
    Exhaustion,
    Success,
    UsageRecord,
    UsageStore,
)


@pytest.fixture
def dealer():
    return AsyncTokenDealer(store=UsageStore())


@pytest.mark.asyncio
async def test_no_tokens_with_coroutine_work(dealer):
    supplied = []

    async def work(token, exhaust):
        supplied.append(token)
        return "ok"

    assert await dealer.deal(None, work) == "ok"
    assert supplied == [None]
    assert len(dealer.store) == 0


@pytest.mark.asyncio
async def test_accepts_plain_callables(dealer):
    assert await dealer.deal(["A"], lambda token, exhaust: token * 2) == "AA"


@pytest.mark.asyncio
async def test_prefers_tokens_with_fewer_pending(dealer):
    tokens = ["A", "B", "C"]
    supplied = []

    async def work(token, exhaust):
        supplied.append(token)
        await asyncio.sleep(0.05)

    await asyncio.gather(*(dealer.deal(tokens, work) for _ in range(6)))
    assert supplied == ["A", "B", "C", "A", "B", "C"]
    assert all(r.pending == 0 for r in dealer.get_usage(tokens).values())


@pytest.mark.asyncio
async def test_rotates_after_async_failure(dealer):
    tokens = ["A", "B", "C", "D"]
    supplied = []

    async def work(token, exhaust):
        supplied.append(token)
        await asyncio.sleep(0.05)
        if token == "A":
            exhaust(time.time() + 2, True)
            raise RuntimeError("foo")
        return token

    assert await dealer.deal(tokens, work) == "B"
    assert await dealer.deal(tokens, work) == "B"
    assert supplied == ["A", "B", "B"]


@pytest.mark.asyncio
async def test_all_exhausted_collects_every_error(dealer):
    tokens = ["A", "B", "C"]

    async def work(token, exhaust):
        exhaust(time.time() + 5, True)
        raise ConnectionError(token)

    with pytest.raises(AllTokensExhaustedError) as excinfo:
        await dealer.deal(tokens, work)
    assert [str(e) for e in excinfo.value.errors] == tokens
    assert all(r.exhausted and r.pending == 0 for r in excinfo.value.usage.values())


@pytest.mark.asyncio
async def test_pending_decremented_on_sync_raise(dealer):
    def work(token, exhaust):
        raise ValueError("sync")

    with pytest.raises(ValueError, match="sync"):
        await dealer.deal(["A", "B"], work)
    assert dealer.get_usage(["A", "B"]) == {"A": UsageRecord(), "B": UsageRecord()}


@pytest.mark.asyncio
async def test_pending_decremented_on_cancel(dealer):
    started = asyncio.Event()

    async def work(token, exhaust):
        started.set()
        await asyncio.sleep(10)

    task = asyncio.ensure_future(dealer.deal(["A"], work))
    await started.wait()
    assert dealer.get_usage(["A"])["A"].pending == 1
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert dealer.get_usage(["A"])["A"].pending == 0


@pytest.mark.asyncio
async def test_exhaust_after_completion_still_marks_token(dealer):
    later = []

    async def work(token, exhaust):
        later.append(exhaust)
        return token

    assert await dealer.deal(["A", "B"], work) == "A"
    later[0](time.time() + 1)
    assert await dealer.deal(["A", "B"], work) == "B"


@pytest.mark.asyncio
async def test_waits_for_soonest_reset():
    dealer = AsyncTokenDealer(wait=True)
    now = time.time()
    await dealer.deal(["A", "B"], lambda t, exhaust: exhaust(now + 0.6))
    await dealer.deal(["A", "B"], lambda t, exhaust: exhaust(now + 0.3))

    supplied = []
    before = time.time()
    await dealer.deal(["A", "B"], lambda token, exhaust: supplied.append(token))
    assert 0.2 <= time.time() - before <= 0.8  # noqa: PLR2004
    assert supplied == ["B"]


@pytest.mark.asyncio
async def test_success_outcome_exhaustion(dealer):
    async def work(token, exhaust):
        return Success(token, exhaustion=Exhaustion(time.time() + 1))

    assert await dealer.deal(["A", "B"], work) == "A"
    assert await dealer.deal(["A", "B"], work) == "B"
    with pytest.raises(AllTokensExhaustedError):
        await dealer.deal(["A", "B"], work)
