"""
Tests for the single-flight cache cells.
"""

import asyncio
import logging
import threading

import pytest

from rlc.gce_metadata.cache import AsyncOnceCell, CellState, OnceCell
from rlc.gce_metadata.errors import UninitializedError
from rlc.gce_metadata.log_utils import logger

N_CALLERS = 8


class WaiterCounter(logging.Handler):
    """Counts callers that joined an in-flight computation.

    The cell logs while still holding its lock, right before it waits, so a
    counted caller is certain to see the outcome of the attempt it joined.
    """

    def __init__(self):
        super().__init__(logging.DEBUG)
        self.count = 0
        self.cond = threading.Condition()

    def emit(self, record):
        if record.getMessage().startswith("Waiting for in-flight computation"):
            with self.cond:
                self.count += 1
                self.cond.notify_all()

    def wait_for(self, count, timeout=5.0):
        with self.cond:
            if not self.cond.wait_for(lambda: self.count >= count, timeout):
                raise AssertionError(f"only {self.count} of {count} callers waiting")


@pytest.fixture
def waiters():
    counter = WaiterCounter()
    level = logger.level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(counter)
    yield counter
    logger.removeHandler(counter)
    logger.setLevel(level)


def _start_callers(cell, compute, count):
    results = [None] * count

    def call(i):
        try:
            results[i] = ("ok", cell.get_or_compute(compute))
        except Exception as e:
            results[i] = ("error", e)

    threads = [threading.Thread(target=call, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    return threads, results


class BlockingCompute:
    """A compute function that holds its caller until released."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self):
        self.calls += 1
        self.started.set()
        assert self.release.wait(5)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_cell_starts_empty():
    cell = OnceCell("project_id")
    assert cell.state is CellState.EMPTY
    with pytest.raises(UninitializedError, match="project_id"):
        cell.value


def test_concurrent_callers_share_one_computation(waiters):
    cell = OnceCell()
    compute = BlockingCompute(["my-project"])

    threads, results = _start_callers(cell, compute, N_CALLERS)
    assert compute.started.wait(5)
    waiters.wait_for(N_CALLERS - 1)
    assert cell.state is CellState.IN_FLIGHT

    compute.release.set()
    for t in threads:
        t.join(5)

    assert compute.calls == 1
    assert results == [("ok", "my-project")] * N_CALLERS
    assert cell.state is CellState.FILLED
    assert cell.value == "my-project"


def test_waiters_receive_the_error_of_their_attempt(waiters):
    cell = OnceCell()
    error = RuntimeError("metadata service unavailable")
    compute = BlockingCompute([error])

    threads, results = _start_callers(cell, compute, N_CALLERS)
    assert compute.started.wait(5)
    waiters.wait_for(N_CALLERS - 1)

    compute.release.set()
    for t in threads:
        t.join(5)

    assert compute.calls == 1
    assert all(kind == "error" and e is error for kind, e in results)
    assert cell.state is CellState.EMPTY


def test_failure_does_not_poison_the_cell():
    cell = OnceCell()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise ConnectionError("booting")
        return "123"

    with pytest.raises(ConnectionError):
        cell.get_or_compute(flaky)
    assert cell.state is CellState.EMPTY

    assert cell.get_or_compute(flaky) == "123"
    assert len(calls) == 2


def test_filled_cell_never_recomputes():
    cell = OnceCell()
    calls = []

    def compute():
        calls.append(1)
        return ["a", "b"]

    first = cell.get_or_compute(compute)
    for _ in range(5):
        assert cell.get_or_compute(compute) is first
    assert len(calls) == 1


def test_falsy_values_are_cached():
    cell = OnceCell()
    calls = []

    def compute():
        calls.append(1)
        return False

    assert cell.get_or_compute(compute) is False
    assert cell.get_or_compute(compute) is False
    assert len(calls) == 1


def test_reentrant_compute_is_an_invariant_violation():
    cell = OnceCell("hostname")

    def compute():
        return cell.get_or_compute(lambda: "never")

    with pytest.raises(UninitializedError, match="hostname"):
        cell.get_or_compute(compute)
    assert cell.state is CellState.EMPTY


def test_async_concurrent_callers_share_one_computation():
    cell = AsyncOnceCell()
    calls = []

    async def compute():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "my-project"

    async def run():
        return await asyncio.gather(*(cell.get_or_compute(compute) for _ in range(N_CALLERS)))

    assert asyncio.run(run()) == ["my-project"] * N_CALLERS
    assert len(calls) == 1
    assert cell.state is CellState.FILLED
    assert cell.value == "my-project"


def test_async_waiters_receive_the_error_then_retry_succeeds():
    cell = AsyncOnceCell()
    error = RuntimeError("metadata service unavailable")
    calls = []

    async def compute():
        calls.append(1)
        await asyncio.sleep(0.01)
        if len(calls) == 1:
            raise error
        return "123"

    async def run():
        results = await asyncio.gather(
            *(cell.get_or_compute(compute) for _ in range(N_CALLERS)),
            return_exceptions=True,
        )
        assert cell.state is CellState.EMPTY
        return results, await cell.get_or_compute(compute)

    results, retried = asyncio.run(run())
    assert all(r is error for r in results)
    assert retried == "123"
    assert len(calls) == 2


def test_async_cancelled_owner_lets_waiter_compute():
    cell = AsyncOnceCell()
    calls = []

    async def compute():
        calls.append(1)
        await asyncio.sleep(0.05 if len(calls) == 1 else 0)
        return "filled-by-waiter"

    async def run():
        owner = asyncio.ensure_future(cell.get_or_compute(compute))
        await asyncio.sleep(0)
        assert cell.state is CellState.IN_FLIGHT
        waiter = asyncio.ensure_future(cell.get_or_compute(compute))
        await asyncio.sleep(0)
        owner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await owner
        return await waiter

    assert asyncio.run(run()) == "filled-by-waiter"
    assert len(calls) == 2
