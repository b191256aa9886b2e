import asyncio
import logging

import httpx
import pytest

from conftest import FakeBot
from service_hub_bot.poller import UpdatePoller
from service_hub_bot.telegram_client import TelegramUpdate


class StopLoop(Exception):
    pass


class RecordingSleep:
    def __init__(self, *, stop_after: int = 0) -> None:
        self.calls: list[float] = []
        self._stop_after = stop_after

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._stop_after and len(self.calls) >= self._stop_after:
            raise StopLoop()


def updates(*update_ids: int) -> list[TelegramUpdate]:
    return [TelegramUpdate(update_id=update_id) for update_id in update_ids]


@pytest.mark.anyio
async def test_cursor_advances_past_highest_update(fake_bot: FakeBot) -> None:
    seen: list[int] = []

    async def handler(update: TelegramUpdate) -> None:
        seen.append(update.update_id)

    fake_bot.batches = [updates(5, 7, 6), []]
    sleep = RecordingSleep()
    poller = UpdatePoller(fake_bot, handler, interval_seconds=5.0, sleep=sleep)

    assert await poller.poll_once() == 3
    assert poller.cursor == 8
    assert await poller.poll_once() == 0
    await poller.drain()

    assert fake_bot.offsets == [0, 8]
    assert sorted(seen) == [5, 6, 7]
    assert sleep.calls == [5.0, 5.0]


@pytest.mark.anyio
async def test_cursor_never_regresses(fake_bot: FakeBot) -> None:
    async def handler(update: TelegramUpdate) -> None:
        return None

    fake_bot.batches = [updates(3), updates(1), []]
    poller = UpdatePoller(fake_bot, handler, offset=10, sleep=RecordingSleep())
    await poller.poll_once()
    assert poller.cursor == 10
    await poller.poll_once()
    await poller.poll_once()
    await poller.drain()
    assert fake_bot.offsets == [10, 10, 10]


@pytest.mark.anyio
async def test_fetch_failure_keeps_cursor_and_sleeps(
    fake_bot: FakeBot, caplog: pytest.LogCaptureFixture
) -> None:
    async def handler(update: TelegramUpdate) -> None:
        return None

    fake_bot.batches = [updates(1), httpx.ConnectError("offline"), updates(2)]
    sleep = RecordingSleep()
    poller = UpdatePoller(fake_bot, handler, interval_seconds=1.5, sleep=sleep)
    with caplog.at_level(logging.WARNING):
        for _ in range(3):
            await poller.poll_once()
    await poller.drain()
    assert fake_bot.offsets == [0, 2, 2]
    assert poller.cursor == 3
    assert sleep.calls == [1.5, 1.5, 1.5]
    assert "telegram.poll.failed" in caplog.text


@pytest.mark.anyio
async def test_run_survives_repeated_failures(fake_bot: FakeBot) -> None:
    async def handler(update: TelegramUpdate) -> None:
        return None

    fake_bot.batches = [RuntimeError("bad"), RuntimeError("bad"), updates(4)]
    sleep = RecordingSleep(stop_after=4)
    poller = UpdatePoller(fake_bot, handler, sleep=sleep)
    with pytest.raises(StopLoop):
        await poller.run()
    await poller.drain()
    assert fake_bot.offsets == [0, 0, 0, 5]


@pytest.mark.anyio
async def test_handler_errors_are_logged(
    fake_bot: FakeBot, caplog: pytest.LogCaptureFixture
) -> None:
    handled: list[int] = []

    async def handler(update: TelegramUpdate) -> None:
        if update.update_id == 1:
            raise ValueError("broken update")
        handled.append(update.update_id)

    fake_bot.batches = [updates(1, 2)]
    poller = UpdatePoller(fake_bot, handler, sleep=RecordingSleep())
    with caplog.at_level(logging.WARNING):
        await poller.poll_once()
        await poller.drain()
    assert handled == [2]
    assert "telegram.task.failed" in caplog.text
    assert poller.pending() == 0


@pytest.mark.anyio
async def test_poller_does_not_wait_for_dispatch(fake_bot: FakeBot) -> None:
    release = asyncio.Event()
    finished: list[int] = []

    async def handler(update: TelegramUpdate) -> None:
        await release.wait()
        finished.append(update.update_id)

    fake_bot.batches = [updates(1), updates(2)]
    poller = UpdatePoller(fake_bot, handler, sleep=RecordingSleep())
    await poller.poll_once()
    await poller.poll_once()
    assert finished == []
    assert poller.pending() == 2
    release.set()
    await poller.drain()
    assert sorted(finished) == [1, 2]


@pytest.mark.anyio
async def test_dispatch_concurrency_is_bounded(fake_bot: FakeBot) -> None:
    active = 0
    max_active = 0

    async def handler(update: TelegramUpdate) -> None:
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0.01)
        active -= 1

    fake_bot.batches = [updates(1, 2, 3, 4, 5, 6)]
    poller = UpdatePoller(fake_bot, handler, max_parallel=2, sleep=RecordingSleep())
    await poller.poll_once()
    await poller.drain()
    assert max_active == 2


@pytest.mark.anyio
async def test_aclose_cancels_pending_dispatch(fake_bot: FakeBot) -> None:
    async def handler(update: TelegramUpdate) -> None:
        await asyncio.Event().wait()

    fake_bot.batches = [updates(1, 2)]
    poller = UpdatePoller(fake_bot, handler, sleep=RecordingSleep())
    await poller.poll_once()
    assert poller.pending() == 2
    await poller.aclose()
    assert poller.pending() == 0
