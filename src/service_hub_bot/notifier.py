from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from .logging_utils import log_event
from .telegram_client import TelegramAPIError

LOCALE_BUTTONS = (("🇮🇹", "it"), ("🇬🇧", "en"))


class MessageTransport(Protocol):
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> Any: ...

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> Any: ...


def build_locale_keyboard() -> dict[str, Any]:
    row = [{"text": label, "callback_data": data} for label, data in LOCALE_BUTTONS]
    return {"inline_keyboard": [row]}


class Notifier:
    """Outbound messages. Transport failures are logged and swallowed."""

    def __init__(
        self, bot: MessageTransport, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self._bot = bot
        self._logger = logger or logging.getLogger(__name__)

    async def send_text(self, chat_id: int, text: str) -> bool:
        return await self._send(chat_id, text)

    async def send_locale_buttons(self, chat_id: int, caption: str) -> bool:
        return await self._send(chat_id, caption, reply_markup=build_locale_keyboard())

    async def answer_callback(self, callback_id: str) -> None:
        if not callback_id:
            return
        try:
            await self._bot.answer_callback_query(callback_id)
        except (httpx.HTTPError, TelegramAPIError) as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telegram.callback.answer_failed",
                callback_id=callback_id,
                exc=exc,
            )

    async def _send(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> bool:
        try:
            await self._bot.send_message(chat_id, text, reply_markup=reply_markup)
        except (httpx.HTTPError, TelegramAPIError) as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telegram.send.failed",
                chat_id=chat_id,
                has_markup=reply_markup is not None,
                exc=exc,
            )
            return False
        return True
