"""Concurrent download queue with retry.

Units of work are blocking callables executed on a thread pool that is
created when ``run`` starts and shut down when it finishes, so no worker
outlives the run that owns it. Results are yielded in completion order to
a single consumer, which is the only place shared state is mutated.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from packsync.core.errors import FetchError

logger = structlog.get_logger()

R = TypeVar("R")


@dataclass
class QueueResult(Generic[R]):
    """Result of a single unit of work.

    Attributes:
        key: Identifier the unit was submitted under
        value: Return value of the unit, or None on failure
        error: Exception raised by the final attempt
        attempts: Number of attempts made before success or final failure
    """

    key: str
    value: R | None
    error: BaseException | None = None
    attempts: int = 1


@dataclass
class _QueueItem(Generic[R]):
    """Internal queue entry."""

    key: str
    work: Callable[[], R]


class DownloadQueue(Generic[R]):
    """Bounded-concurrency work queue.

    Manages download concurrency with:
    - A run-scoped thread pool of ``max_concurrency`` workers
    - Exponential backoff retry for transport errors
    - No retry for any other exception (integrity failures are final)

    Args:
        max_concurrency: Maximum concurrent units
        max_retries: Maximum attempts per unit
        base_backoff: Base delay in seconds for exponential backoff
        retry_on: Exception types that trigger a retry
    """

    def __init__(
        self,
        max_concurrency: int = 10,
        max_retries: int = 3,
        base_backoff: float = 0.5,
        retry_on: tuple[type[BaseException], ...] = (FetchError,),
    ):
        self.max_concurrency = max_concurrency
        self.max_retries = max_retries
        self.base_backoff = base_backoff
        self.retry_on = retry_on

        self._queue: asyncio.Queue[_QueueItem[R]] = asyncio.Queue()

    def submit(self, key: str, work: Callable[[], R]) -> None:
        """Enqueue a unit of work.

        Args:
            key: Identifier reported back with the result
            work: Blocking callable, called fresh on each retry attempt
        """
        self._queue.put_nowait(_QueueItem(key=key, work=work))

    async def run(self, total: int) -> AsyncIterator[QueueResult[R]]:
        """Process queued units concurrently, yielding results.

        Creates up to max_concurrency worker tasks that pull from the
        queue. A failing unit never cancels its siblings.

        Args:
            total: Total number of queued units

        Yields:
            QueueResult for each completed unit
        """
        result_queue: asyncio.Queue[QueueResult[R] | None] = asyncio.Queue()
        num_workers = min(self.max_concurrency, total)
        if num_workers <= 0:
            return

        executor = ThreadPoolExecutor(max_workers=num_workers, thread_name_prefix="packsync-fetch")

        async def worker() -> None:
            try:
                while True:
                    try:
                        item = self._queue.get_nowait()
                    except asyncio.QueueEmpty:
                        break

                    result = await self._execute_with_retry(executor, item)
                    await result_queue.put(result)
            finally:
                await result_queue.put(None)  # Signal worker done

        workers = [asyncio.ensure_future(worker()) for _ in range(num_workers)]

        try:
            workers_done = 0
            while workers_done < num_workers:
                result = await result_queue.get()
                if result is None:
                    workers_done += 1
                    continue
                yield result
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            executor.shutdown(wait=True, cancel_futures=True)

    async def _execute_with_retry(
        self, executor: ThreadPoolExecutor, item: _QueueItem[R]
    ) -> QueueResult[R]:
        """Execute a unit with retry and backoff.

        Args:
            executor: Thread pool running the blocking work
            item: Queue item containing the unit

        Returns:
            QueueResult with the value on success or the error on failure
        """
        loop = asyncio.get_running_loop()
        last_error: BaseException | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                value = await loop.run_in_executor(executor, item.work)
                return QueueResult(key=item.key, value=value, attempts=attempt)
            except self.retry_on as e:
                last_error = e
                logger.debug(
                    "download_retry",
                    key=item.key,
                    attempt=attempt,
                    error=str(e),
                )
            except Exception as e:
                return QueueResult(key=item.key, value=None, error=e, attempts=attempt)

            if attempt < self.max_retries:
                backoff = self.base_backoff * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)

        return QueueResult(
            key=item.key,
            value=None,
            error=last_error,
            attempts=self.max_retries,
        )
