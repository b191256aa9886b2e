import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional

import httpx
import typer

from .config import BotConfig, ConfigError, load_bot_config
from .hub_state import HubStateError, HubStateStore
from .logging_utils import log_event, setup_console_logger, setup_rotating_logger
from .service import HubBotService
from .telegram_client import TelegramAPIError, TelegramBotClient

LOGGER_NAME = "service-hub-bot"

app = typer.Typer(add_completion=False)

SETTINGS_OPTION = typer.Option(
    None, "--settings", help="Optional YAML settings file (polling, executor, log)"
)


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


def _raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _require_config(settings: Optional[Path]) -> BotConfig:
    try:
        return load_bot_config(settings)
    except ConfigError as exc:
        _raise_exit(str(exc), cause=exc)


def _build_logger(config: BotConfig) -> logging.Logger:
    if config.log is not None:
        return setup_rotating_logger(LOGGER_NAME, config.log, level=config.log_level)
    return setup_console_logger(LOGGER_NAME, level=config.log_level)


@app.command()
def run(settings: Optional[Path] = SETTINGS_OPTION):
    """Start polling Telegram and serving commands."""
    config = _require_config(settings)
    logger = _build_logger(config)
    try:
        service = HubBotService(config, logger=logger)
    except HubStateError as exc:
        _raise_exit(str(exc), cause=exc)
    log_event(logger, logging.INFO, "telegram.bot.starting", hub_file=str(config.hub_file))
    try:
        asyncio.run(service.run_polling())
    except KeyboardInterrupt:
        log_event(logger, logging.INFO, "telegram.bot.interrupted")


@app.command()
def check(settings: Optional[Path] = SETTINGS_OPTION):
    """Validate the hub document and print what it grants."""
    config = _require_config(settings)
    hub_file = config.hub_file or Path()
    try:
        store = HubStateStore.load(hub_file, logger=logging.getLogger(LOGGER_NAME))
    except HubStateError as exc:
        _raise_exit(str(exc), cause=exc)
    operators = asyncio.run(store.operators())
    typer.echo(f"Hub document: {hub_file}")
    typer.echo(f"Admin id: {store.admin_id or 'none'}")
    typer.echo(f"Operators: {len(operators)}")
    for operator in operators:
        marker = " (admin)" if operator.chat_id == store.admin_id else ""
        typer.echo(f"  {operator.chat_id}: {operator.username} [{operator.locale}]{marker}")
    typer.echo(f"Services: {store.help_text() or 'none'}")
    warnings = store.warnings()
    for warning in warnings:
        typer.echo(f"Warning: {warning}")
    if not warnings:
        typer.echo("OK")


@app.command()
def health(
    settings: Optional[Path] = SETTINGS_OPTION,
    timeout: float = typer.Option(5.0, "--timeout", help="Timeout (seconds)"),
):
    """Check Telegram API connectivity for the configured bot."""
    config = _require_config(settings)
    timeout_seconds = max(float(timeout), 0.1)

    async def _run() -> object:
        async with TelegramBotClient(config.bot_token or "") as client:
            return await asyncio.wait_for(client.get_me(), timeout=timeout_seconds)

    try:
        me = asyncio.run(_run())
    except asyncio.TimeoutError as exc:
        _raise_exit("Telegram health check timed out", cause=exc)
    except (TelegramAPIError, httpx.HTTPError) as exc:
        _raise_exit(f"Telegram health check failed: {exc}", cause=exc)
    username = me.get("username") if isinstance(me, dict) else None
    typer.echo(f"Telegram OK: @{username or 'unknown'}")


if __name__ == "__main__":
    main()
