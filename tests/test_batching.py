import asyncio

import pytest

from tripstory.services.batching import run_all, run_in_cohorts


@pytest.mark.asyncio
@pytest.mark.parametrize("count,limit", [(0, 3), (1, 3), (7, 3), (6, 3), (5, 1), (4, 10)])
async def test_every_item_runs_exactly_once(count, limit):
    calls = []

    async def op(item):
        calls.append(item)
        await asyncio.sleep(0)
        return item * 2

    results = await run_in_cohorts(list(range(count)), op, limit)

    assert sorted(calls) == list(range(count))
    assert [r.item for r in results] == list(range(count))
    assert [r.value for r in results] == [i * 2 for i in range(count)]
    assert all(r.ok for r in results)


@pytest.mark.asyncio
async def test_failures_are_captured_not_raised():
    async def op(item):
        if item % 2:
            raise ValueError(f"bad item {item}")
        return item

    results = await run_in_cohorts([0, 1, 2, 3, 4], op, limit=2)

    assert [r.ok for r in results] == [True, False, True, False, True]
    assert isinstance(results[1].error, ValueError)
    assert results[1].value is None


@pytest.mark.asyncio
async def test_never_exceeds_limit_in_flight():
    in_flight = 0
    peak = 0

    async def op(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    await run_in_cohorts(list(range(10)), op, limit=3)

    assert peak == 3


@pytest.mark.asyncio
async def test_cohorts_run_in_sequence():
    started = []
    finished = []

    async def op(item):
        started.append((item, len(finished)))
        await asyncio.sleep(0.01 * (3 - item % 3))
        finished.append(item)

    await run_in_cohorts(list(range(6)), op, limit=3)

    # the second cohort only starts once all three of the first have settled
    assert all(done == 0 for item, done in started if item < 3)
    assert all(done == 3 for item, done in started if item >= 3)


@pytest.mark.asyncio
async def test_callback_reports_after_each_cohort():
    reports = []

    async def op(item):
        if item == 3:
            raise RuntimeError("boom")

    await run_in_cohorts(list(range(7)), op, limit=3, on_cohort_settled=lambda done, total: reports.append((done, total)))

    assert reports == [(3, 7), (6, 7), (7, 7)]


@pytest.mark.asyncio
async def test_async_callback_is_awaited():
    reports = []

    async def report(done, total):
        reports.append(done)

    async def op(item):
        return item

    await run_in_cohorts([1, 2, 3], op, limit=2, on_cohort_settled=report)

    assert reports == [2, 3]


@pytest.mark.asyncio
async def test_empty_input_never_calls_callback():
    reports = []

    async def op(item):
        return item

    assert await run_in_cohorts([], op, limit=3, on_cohort_settled=lambda *a: reports.append(a)) == []
    assert reports == []


@pytest.mark.asyncio
async def test_invalid_limit_rejected():
    async def op(item):
        return item

    with pytest.raises(ValueError):
        await run_in_cohorts([1], op, limit=0)


@pytest.mark.asyncio
async def test_run_all_starts_everything_at_once():
    in_flight = 0
    peak = 0

    async def op(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    await run_all(list(range(5)), op)

    assert peak == 5
    assert await run_all([], op) == []
