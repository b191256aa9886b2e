from __future__ import annotations

import logging
from typing import Optional

from .executor import START_SCRIPT, STOP_SCRIPT, ScriptExecutor
from .hub_state import HubStateStore
from .localization import (
    MSG_FAILURE,
    MSG_MALFORMED,
    MSG_SUCCESS,
    MSG_UNAUTHORIZED,
    MSG_UNIMPLEMENTED,
    MSG_WELCOME,
    normalize_locale,
)
from .logging_utils import log_event
from .notifier import Notifier
from .telegram_client import TelegramCallbackQuery, TelegramUpdate

COMMAND_PREFIX = "/"
LOCALE_PROMPT_CAPTION = "ㅤㅤ( ﾉ ﾟｰﾟ)ﾉ"
START_COMMAND = "start"
HELP_COMMAND = "help"
STOP_KEYWORD = "stop"


def acting_chat_id(update: TelegramUpdate) -> Optional[int]:
    if update.callback is not None:
        return update.callback.chat_id
    if update.message is not None:
        return update.message.chat_id
    return None


def parse_stop_target(command: str) -> Optional[str]:
    """
    Extract the service name from `stop <name>`.

    Exactly one space must separate the keyword from a nonempty name; the
    name keeps the caller's casing.
    """
    rest = command[len(STOP_KEYWORD):]
    if len(rest) < 2 or rest[0] != " " or rest[1] == " ":
        return None
    return rest[1:]


class CommandDispatcher:
    def __init__(
        self,
        store: HubStateStore,
        executor: ScriptExecutor,
        notifier: Notifier,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._notifier = notifier
        self._logger = logger or logging.getLogger(__name__)

    async def dispatch(self, update: TelegramUpdate) -> None:
        chat_id = acting_chat_id(update)
        if chat_id is None:
            log_event(
                self._logger,
                logging.INFO,
                "telegram.update.ignored",
                update_id=update.update_id,
            )
            return
        log_event(
            self._logger,
            logging.INFO,
            "telegram.update.received",
            update_id=update.update_id,
            chat_id=chat_id,
            has_callback=update.callback is not None,
        )
        if not await self._store.is_allowed(chat_id):
            log_event(
                self._logger,
                logging.WARNING,
                "hub.allowlist.denied",
                update_id=update.update_id,
                chat_id=chat_id,
            )
            return
        if update.callback is not None:
            await self._handle_locale_selection(chat_id, update.callback)
            return
        text = update.message.text if update.message is not None else None
        await self._handle_text(chat_id, text or "")

    async def _handle_locale_selection(
        self, chat_id: int, callback: TelegramCallbackQuery
    ) -> None:
        locale = normalize_locale(callback.data)
        await self._store.set_locale(chat_id, locale)
        await self._notifier.answer_callback(callback.callback_id)
        await self._reply(chat_id, MSG_WELCOME, locale=locale)

    async def _handle_text(self, chat_id: int, text: str) -> None:
        if not text.startswith(COMMAND_PREFIX):
            log_event(self._logger, logging.INFO, "hub.input.malformed", chat_id=chat_id)
            await self._reply(chat_id, MSG_MALFORMED)
            return
        await self._handle_command(chat_id, text[len(COMMAND_PREFIX):])

    async def _handle_command(self, chat_id: int, raw: str) -> None:
        command = raw.lower()
        log_event(self._logger, logging.INFO, "hub.command", chat_id=chat_id, command=command)
        if command == START_COMMAND:
            await self._notifier.send_locale_buttons(chat_id, LOCALE_PROMPT_CAPTION)
            return
        if command == HELP_COMMAND:
            help_text = self._store.help_text()
            if not help_text:
                await self._reply(chat_id, MSG_UNIMPLEMENTED)
                return
            await self._notifier.send_text(chat_id, help_text)
            return
        if raw[: len(STOP_KEYWORD)].lower() == STOP_KEYWORD:
            await self._handle_stop(chat_id, raw)
            return
        await self._run_service(chat_id, command, START_SCRIPT)

    async def _handle_stop(self, chat_id: int, raw: str) -> None:
        if chat_id != self._store.admin_id:
            log_event(
                self._logger,
                logging.WARNING,
                "hub.stop.unauthorized",
                chat_id=chat_id,
            )
            await self._reply(chat_id, MSG_UNAUTHORIZED)
            return
        name = parse_stop_target(raw)
        if name is None:
            await self._reply(chat_id, MSG_MALFORMED)
            return
        await self._run_service(chat_id, name, STOP_SCRIPT)

    async def _run_service(self, chat_id: int, name: str, script: str) -> None:
        path = self._store.service_path(name)
        if path is None:
            log_event(
                self._logger,
                logging.INFO,
                "hub.service.unknown",
                chat_id=chat_id,
                service=name,
            )
            await self._reply(chat_id, MSG_UNIMPLEMENTED)
            return
        try:
            ok = await self._executor.invoke(path, script)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "hub.service.error",
                service=name,
                script=script,
                exc=exc,
            )
            ok = False
        log_event(
            self._logger,
            logging.INFO,
            "hub.service.action",
            chat_id=chat_id,
            service=name,
            script=script,
            ok=ok,
        )
        await self._reply(chat_id, MSG_SUCCESS if ok else MSG_FAILURE)

    async def _reply(
        self, chat_id: int, key: str, *, locale: Optional[str] = None
    ) -> None:
        text = await self._store.render(chat_id, key, locale=locale)
        await self._notifier.send_text(chat_id, text)
