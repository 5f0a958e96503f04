"""
RLC GCE Metadata - Single-Flight Cache

A cell memoizes one value. Concurrent callers share a single computation:
one caller runs it, the others wait for its outcome. A failed computation
leaves the cell empty so that the next caller tries again; a successful one
is kept for the lifetime of the cell.
"""

import asyncio
import threading
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .errors import UninitializedError
from .log_utils import logger

T = TypeVar("T")


class CellState(Enum):
    EMPTY = "empty"
    IN_FLIGHT = "in-flight"
    FILLED = "filled"


class _Attempt:
    """One run of a compute function. Waiters hold on to the attempt they joined."""

    __slots__ = ("owner", "done", "error")

    def __init__(self):
        self.owner = threading.get_ident()
        self.done = False
        self.error: Optional[BaseException] = None


class OnceCell(Generic[T]):
    """
    Thread-safe single-flight memoization cell.

    All state transitions happen under one ``threading.Condition``; waiters
    block on it instead of polling. ``FILLED`` is terminal and is read
    without taking the lock.
    """

    def __init__(self, name: str = "value"):
        self.name = name
        self._cond = threading.Condition()
        self._state = CellState.EMPTY
        self._value: Optional[T] = None
        self._attempt: Optional[_Attempt] = None

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def value(self) -> T:
        if self._state is not CellState.FILLED:
            raise UninitializedError(f"{self.name} has not been computed")
        return self._value

    def get_or_compute(self, compute: Callable[[], T]) -> T:
        """
        Return the cached value, computing it first if needed.

        Args:
            compute (Callable[[], T]): Produces the value. Runs outside the
                lock, at most once at a time for this cell.

        Returns:
            T: The value of the one successful computation.

        Raises:
            Exception: Whatever ``compute`` raised, for the caller that ran it
                and for every caller that waited on that same attempt.
            UninitializedError: If ``compute`` re-enters its own cell, or a
                finished attempt left the cell neither filled nor failed.
        """
        # value is assigned before state, so FILLED implies a complete value
        if self._state is CellState.FILLED:
            return self._value

        with self._cond:
            if self._state is CellState.FILLED:
                return self._value

            attempt = self._attempt
            if attempt is not None:
                if attempt.owner == threading.get_ident():
                    raise UninitializedError(f"{self.name} is already being computed by this thread")
                logger.debug(f"Waiting for in-flight computation of {self.name}")
                self._cond.wait_for(lambda: attempt.done)
                if attempt.error is not None:
                    raise attempt.error
                if self._state is CellState.FILLED:
                    return self._value
                raise UninitializedError(f"{self.name} finished computing without a value")

            attempt = self._attempt = _Attempt()
            self._state = CellState.IN_FLIGHT

        try:
            value = compute()
        except BaseException as e:
            self._finish(attempt, error=e)
            raise
        self._finish(attempt, value=value)
        return value

    def _finish(self, attempt: _Attempt, value=None, error: Optional[BaseException] = None) -> None:
        with self._cond:
            if error is None:
                self._value = value
                self._state = CellState.FILLED
                logger.debug(f"Cached {self.name}")
            else:
                attempt.error = error
                self._state = CellState.EMPTY
                logger.debug(f"Computing {self.name} failed, cell left empty: {error}")
            attempt.done = True
            self._attempt = None
            self._cond.notify_all()


class AsyncOnceCell(Generic[T]):
    """
    Single-flight memoization cell for asyncio tasks on one event loop.

    No lock is needed: state only changes between awaits. Waiters await the
    in-flight attempt's future. If the computing task is cancelled, waiters
    start a new attempt instead of being cancelled with it.
    """

    def __init__(self, name: str = "value"):
        self.name = name
        self._state = CellState.EMPTY
        self._value: Optional[T] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def value(self) -> T:
        if self._state is not CellState.FILLED:
            raise UninitializedError(f"{self.name} has not been computed")
        return self._value

    async def get_or_compute(self, compute: Callable[[], Awaitable[T]]) -> T:
        while True:
            if self._state is CellState.FILLED:
                return self._value

            pending = self._pending
            if pending is None:
                break

            logger.debug(f"Waiting for in-flight computation of {self.name}")
            await asyncio.wait({pending})
            if pending.cancelled():
                continue
            error = pending.exception()
            if error is not None:
                raise error
            if self._state is CellState.FILLED:
                return self._value
            raise UninitializedError(f"{self.name} finished computing without a value")

        pending = self._pending = asyncio.get_running_loop().create_future()
        self._state = CellState.IN_FLIGHT
        try:
            value = await compute()
        except Exception as e:
            self._reset()
            pending.set_exception(e)
            # Mark as retrieved; there may be no waiter to do it.
            pending.exception()
            logger.debug(f"Computing {self.name} failed, cell left empty: {e}")
            raise
        except BaseException:
            # Cancellation and interpreter exit: let waiters retry.
            self._reset()
            pending.cancel()
            raise

        self._value = value
        self._state = CellState.FILLED
        self._pending = None
        pending.set_result(value)
        logger.debug(f"Cached {self.name}")
        return value

    def _reset(self) -> None:
        self._state = CellState.EMPTY
        self._pending = None
