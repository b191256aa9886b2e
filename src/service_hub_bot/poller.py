from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from .logging_utils import log_event
from .telegram_client import DEFAULT_ALLOWED_UPDATES, TelegramUpdate

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_MAX_PARALLEL = 8

UpdateHandler = Callable[[TelegramUpdate], Awaitable[None]]


class UpdateSource(Protocol):
    async def get_updates(
        self,
        *,
        offset: int,
        timeout: int = 0,
        allowed_updates: Optional[Sequence[str]] = DEFAULT_ALLOWED_UPDATES,
    ) -> list[TelegramUpdate]: ...


class UpdatePoller:
    """
    Fixed-interval polling loop.

    Every fetched update is dispatched as its own task; at most
    `max_parallel` handlers run at once. The loop never waits for handlers
    and never stops on fetch errors.
    """

    def __init__(
        self,
        source: UpdateSource,
        handler: UpdateHandler,
        *,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout_seconds: int = 0,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        offset: int = 0,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._handler = handler
        self._interval = interval_seconds
        self._timeout = timeout_seconds
        self._max_parallel = max(1, max_parallel)
        self._semaphore = asyncio.Semaphore(self._max_parallel)
        self._cursor = offset
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def cursor(self) -> int:
        return self._cursor

    def pending(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        log_event(
            self._logger,
            logging.INFO,
            "telegram.poll.started",
            interval_seconds=self._interval,
            timeout_seconds=self._timeout,
            max_parallel=self._max_parallel,
        )
        while True:
            await self.poll_once()

    async def poll_once(self) -> int:
        """Fetch one batch, dispatch it, then wait out the poll interval."""
        dispatched = 0
        try:
            updates = await self._source.get_updates(
                offset=self._cursor, timeout=self._timeout
            )
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telegram.poll.failed",
                offset=self._cursor,
                exc=exc,
            )
        else:
            for update in updates:
                self._spawn(update)
                self._cursor = max(self._cursor, update.update_id + 1)
                dispatched += 1
        await self._sleep(self._interval)
        return dispatched

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    def _spawn(self, update: TelegramUpdate) -> None:
        task = asyncio.create_task(self._dispatch(update))
        self._tasks.add(task)
        task.add_done_callback(self._log_task_result)

    async def _dispatch(self, update: TelegramUpdate) -> None:
        async with self._semaphore:
            await self._handler(update)

    def _log_task_result(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        try:
            task.result()
        except asyncio.CancelledError:
            return
        except Exception as exc:
            log_event(self._logger, logging.WARNING, "telegram.task.failed", exc=exc)
