"""Bounded-concurrency FIFO queue for API calls."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, TypeVar

from .const import DEFAULT_CONCURRENCY
from .exceptions import ToonAbortedError

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Job = Callable[[], Awaitable[T]]


class RequestQueue:
    """Runs queued jobs in submission order, `concurrency` at a time.

    Attributes:
        concurrency: Maximum number of jobs running at once.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.concurrency = concurrency
        self._pending: deque[tuple[Job, asyncio.Future]] = deque()
        self._active = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def size(self) -> int:
        """Number of jobs waiting to start, not counting abandoned ones."""
        return sum(1 for _, future in self._pending if not future.done())

    @property
    def active(self) -> int:
        """Number of jobs currently running."""
        return self._active

    async def enqueue(self, job: Job) -> T:
        """Queue `job` and wait for its outcome.

        Args:
            job: Zero-argument coroutine function performing one call.

        Returns:
            Whatever the job returns. Exceptions raised by the job propagate.

        Raises:
            ToonAbortedError: If the queue was aborted before the job started.
        """
        future = asyncio.get_running_loop().create_future()
        self._pending.append((job, future))
        _LOGGER.debug(
            "Queued request (waiting=%s, active=%s)", len(self._pending), self._active
        )
        self._dispatch()
        return await future

    def abort_all(self) -> int:
        """Fail every job that has not started yet.

        Running jobs are left alone.

        Returns:
            The number of aborted jobs.
        """
        aborted = 0
        while self._pending:
            _, future = self._pending.popleft()
            if not future.done():
                future.set_exception(ToonAbortedError("Request aborted"))
                aborted += 1
        if aborted:
            _LOGGER.warning("Aborted %s queued requests", aborted)
        return aborted

    def _dispatch(self) -> None:
        while self._pending and self._active < self.concurrency:
            job, future = self._pending.popleft()
            if future.done():
                # Caller gave up while waiting.
                continue
            self._active += 1
            task = asyncio.ensure_future(self._run(job, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job: Job, future: asyncio.Future) -> None:
        try:
            result = await job()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as err:
            if not future.done():
                future.set_exception(err)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._dispatch()
