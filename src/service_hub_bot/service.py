from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import BotConfig
from .dispatcher import CommandDispatcher
from .executor import ScriptExecutor, SudoScriptExecutor
from .hub_state import HubStateStore
from .logging_utils import log_event
from .notifier import Notifier
from .poller import UpdatePoller
from .telegram_client import TelegramBotClient


class HubBotService:
    """Wires the hub document, Telegram client, dispatcher and poller together."""

    def __init__(
        self,
        config: BotConfig,
        *,
        logger: Optional[logging.Logger] = None,
        store: Optional[HubStateStore] = None,
        bot: Optional[TelegramBotClient] = None,
        executor: Optional[ScriptExecutor] = None,
    ) -> None:
        config.validate()
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._store = store or HubStateStore.load(
            config.hub_file or Path(), logger=self._logger
        )
        self._bot = bot or TelegramBotClient(config.bot_token or "", logger=self._logger)
        self._executor = executor or SudoScriptExecutor(
            user=config.executor_user,
            sudo_binary=config.sudo_binary,
            logger=self._logger,
        )
        self._notifier = Notifier(self._bot, logger=self._logger)
        self._dispatcher = CommandDispatcher(
            self._store, self._executor, self._notifier, logger=self._logger
        )
        self._poller = UpdatePoller(
            self._bot,
            self._dispatcher.dispatch,
            interval_seconds=config.poll_interval_seconds,
            timeout_seconds=config.poll_timeout_seconds,
            max_parallel=config.max_parallel,
            logger=self._logger,
        )

    @property
    def store(self) -> HubStateStore:
        return self._store

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def poller(self) -> UpdatePoller:
        return self._poller

    async def run_polling(self) -> None:
        log_event(
            self._logger,
            logging.INFO,
            "telegram.bot.started",
            hub_file=str(self._config.hub_file),
            services=self._store.service_names(),
            admin_id=self._store.admin_id,
        )
        try:
            await self._poller.run()
        finally:
            await self._poller.aclose()
            await self._bot.close()
            log_event(self._logger, logging.INFO, "telegram.bot.stopped")
