import logging

import pytest

from conftest import FakeBot
from service_hub_bot.notifier import Notifier, build_locale_keyboard


def test_locale_keyboard_has_one_row_of_two_buttons() -> None:
    keyboard = build_locale_keyboard()
    assert keyboard == {
        "inline_keyboard": [
            [
                {"text": "🇮🇹", "callback_data": "it"},
                {"text": "🇬🇧", "callback_data": "en"},
            ]
        ]
    }


@pytest.mark.anyio
async def test_send_text(fake_bot: FakeBot) -> None:
    notifier = Notifier(fake_bot)
    assert await notifier.send_text(200, "hello") is True
    assert fake_bot.messages == [{"chat_id": 200, "text": "hello", "reply_markup": None}]


@pytest.mark.anyio
async def test_send_failure_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    notifier = Notifier(FakeBot(fail_sends=True))
    with caplog.at_level(logging.WARNING):
        assert await notifier.send_locale_buttons(200, "pick") is False
    assert "telegram.send.failed" in caplog.text


@pytest.mark.anyio
async def test_answer_callback_skips_empty_id(fake_bot: FakeBot) -> None:
    notifier = Notifier(fake_bot)
    await notifier.answer_callback("")
    await notifier.answer_callback("cb-2")
    assert fake_bot.answered == ["cb-2"]
