from __future__ import annotations
import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Set, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")
JobFn = Callable[[], Awaitable[object]]


class JobQueue:
    """
    FIFO of job closures drained by at most `concurrency` concurrent tasks.

    Counters are only touched from the event loop thread, so dispatch needs
    no lock. A closure is expected to turn its own failures into a result;
    anything it still raises is logged and dropped here.
    """

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.running = 0
        self._queue: Deque[JobFn] = deque()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._queue)

    def submit(self, job: JobFn) -> None:
        self._queue.append(job)
        self._dispatch()

    async def run(self, job: Callable[[], Awaitable[T]]) -> T:
        """Submit `job` and wait for its return value."""
        fut: asyncio.Future = asyncio.get_running_loop().create_future()

        async def _wrapped() -> None:
            try:
                value = await job()
            except BaseException as e:
                if not fut.done():
                    fut.set_exception(e)
                raise
            if not fut.done():
                fut.set_result(value)

        self.submit(_wrapped)
        return await fut

    def _dispatch(self) -> None:
        while self.running < self.concurrency and self._queue:
            job = self._queue.popleft()
            self.running += 1
            task = asyncio.ensure_future(self._invoke(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _invoke(self, job: JobFn) -> None:
        try:
            await job()
        except Exception as e:
            log.error("queue.job_failed", error=repr(e))
        finally:
            self.running -= 1
            self._dispatch()
