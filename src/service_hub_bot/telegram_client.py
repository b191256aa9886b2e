from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_ALLOWED_UPDATES = ("message", "callback_query")
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0


class TelegramAPIError(Exception):
    """Raised when the Bot API answers with ok=false or an unusable payload."""


@dataclass(frozen=True)
class TelegramMessage:
    update_id: int
    message_id: Optional[int]
    chat_id: int
    from_user_id: Optional[int]
    text: Optional[str]


@dataclass(frozen=True)
class TelegramCallbackQuery:
    update_id: int
    callback_id: str
    data: str
    chat_id: Optional[int]
    message_id: Optional[int]
    from_user_id: Optional[int]


@dataclass(frozen=True)
class TelegramUpdate:
    update_id: int
    message: Optional[TelegramMessage] = None
    callback: Optional[TelegramCallbackQuery] = None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _parse_message(update_id: int, payload: Any) -> Optional[TelegramMessage]:
    if not isinstance(payload, dict):
        return None
    chat = payload.get("chat")
    chat_id = _as_int(chat.get("id")) if isinstance(chat, dict) else None
    if chat_id is None:
        return None
    sender = payload.get("from")
    text = payload.get("text")
    return TelegramMessage(
        update_id=update_id,
        message_id=_as_int(payload.get("message_id")),
        chat_id=chat_id,
        from_user_id=_as_int(sender.get("id")) if isinstance(sender, dict) else None,
        text=text if isinstance(text, str) else None,
    )


def _parse_callback(update_id: int, payload: Any) -> Optional[TelegramCallbackQuery]:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, str) or not data:
        return None
    message = payload.get("message")
    chat_id = None
    message_id = None
    if isinstance(message, dict):
        chat = message.get("chat")
        if isinstance(chat, dict):
            chat_id = _as_int(chat.get("id"))
        message_id = _as_int(message.get("message_id"))
    sender = payload.get("from")
    return TelegramCallbackQuery(
        update_id=update_id,
        callback_id=str(payload.get("id") or ""),
        data=data,
        chat_id=chat_id,
        message_id=message_id,
        from_user_id=_as_int(sender.get("id")) if isinstance(sender, dict) else None,
    )


def parse_update(payload: Any) -> Optional[TelegramUpdate]:
    if not isinstance(payload, dict):
        return None
    update_id = _as_int(payload.get("update_id"))
    if update_id is None:
        return None
    callback = _parse_callback(update_id, payload.get("callback_query"))
    message = None if callback else _parse_message(update_id, payload.get("message"))
    return TelegramUpdate(update_id=update_id, message=message, callback=callback)


class TelegramBotClient:
    def __init__(
        self,
        bot_token: str,
        *,
        base_url: str = TELEGRAM_API_BASE,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{bot_token}",
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "TelegramBotClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        *,
        payload: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        kwargs: dict[str, Any] = {"json": payload or {}}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = await self._client.post(f"/{method}", **kwargs)
        try:
            data = response.json()
        except ValueError as exc:
            response.raise_for_status()
            raise TelegramAPIError(f"{method}: invalid JSON response") from exc
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TelegramAPIError(
                f"{method} failed ({response.status_code}): {description or 'unknown error'}"
            )
        return data.get("result")

    async def get_updates(
        self,
        *,
        offset: int,
        timeout: int = 0,
        allowed_updates: Optional[Sequence[str]] = DEFAULT_ALLOWED_UPDATES,
    ) -> list[TelegramUpdate]:
        payload: dict[str, Any] = {"offset": offset, "timeout": timeout}
        if allowed_updates:
            payload["allowed_updates"] = list(allowed_updates)
        # Long polling keeps the request open for `timeout` seconds.
        http_timeout = max(DEFAULT_HTTP_TIMEOUT_SECONDS, timeout + 10.0)
        result = await self._request("getUpdates", payload=payload, timeout=http_timeout)
        if not isinstance(result, list):
            raise TelegramAPIError("getUpdates: result is not a list")
        updates: list[TelegramUpdate] = []
        for item in result:
            update = parse_update(item)
            if update is not None:
                updates.append(update)
        return updates

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> Any:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return await self._request("sendMessage", payload=payload)

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> Any:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self._request("answerCallbackQuery", payload=payload)

    async def get_me(self) -> Any:
        return await self._request("getMe")
