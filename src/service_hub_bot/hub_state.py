from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .localization import (
    DEFAULT_LOCALE,
    missing_keys,
    render_template,
    resolve_template,
)
from .logging_utils import log_event
from .utils import atomic_write, read_json

ADMIN_KEY = "adminTelegramId"
WHITELIST_KEY = "whitelist"
LOCALIZATION_KEY = "localization"
HUB_KEY = "hub"
KNOWN_KEYS = {ADMIN_KEY, WHITELIST_KEY, LOCALIZATION_KEY, HUB_KEY}


class HubStateError(Exception):
    """Raised when the hub document cannot be loaded."""


def _overlay_section(raw: Any) -> dict[str, Any]:
    return dict(raw) if isinstance(raw, dict) else {}


def _overlay_entry(raw: Any, **fields: Any) -> dict[str, Any]:
    entry = _overlay_section(raw)
    entry.update(fields)
    return entry


@dataclass
class Operator:
    chat_id: int
    username: str = ""
    locale: str = DEFAULT_LOCALE
    raw: dict[str, Any] = dataclasses.field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, chat_id: int, payload: dict[str, Any]) -> "Operator":
        username = payload.get("username")
        if not isinstance(username, str):
            username = ""
        locale = payload.get("locale")
        if not isinstance(locale, str) or not locale:
            locale = DEFAULT_LOCALE
        return cls(chat_id=chat_id, username=username, locale=locale, raw=dict(payload))

    def to_dict(self) -> dict[str, Any]:
        # Fields this bot does not understand are written back untouched.
        payload = dict(self.raw)
        if isinstance(payload.get("username", ""), str):
            payload["username"] = self.username
        payload["locale"] = self.locale
        return payload


@dataclass
class HubState:
    admin_id: int = 0
    operators: dict[int, Operator] = dataclasses.field(default_factory=dict)
    localization: dict[str, dict[str, str]] = dataclasses.field(default_factory=dict)
    services: dict[str, str] = dataclasses.field(default_factory=dict)
    extra: dict[str, Any] = dataclasses.field(default_factory=dict)
    raw_localization: dict[str, Any] = dataclasses.field(default_factory=dict, repr=False)
    raw_services: dict[str, Any] = dataclasses.field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "HubState":
        admin_raw = payload.get(ADMIN_KEY, 0)
        if isinstance(admin_raw, bool) or not isinstance(admin_raw, int):
            raise HubStateError(f"'{ADMIN_KEY}' must be an integer")

        operators: dict[int, Operator] = {}
        whitelist = payload.get(WHITELIST_KEY) or {}
        if not isinstance(whitelist, dict):
            raise HubStateError(f"'{WHITELIST_KEY}' must be an object")
        for key, entry in whitelist.items():
            try:
                chat_id = int(key)
            except (TypeError, ValueError) as exc:
                raise HubStateError(f"invalid chat id in whitelist: {key!r}") from exc
            if not isinstance(entry, dict):
                raise HubStateError(f"whitelist entry for {key!r} must be an object")
            operators[chat_id] = Operator.from_dict(chat_id, entry)

        localization: dict[str, dict[str, str]] = {}
        catalog = payload.get(LOCALIZATION_KEY) or {}
        if not isinstance(catalog, dict):
            raise HubStateError(f"'{LOCALIZATION_KEY}' must be an object")
        for locale, messages in catalog.items():
            if not isinstance(messages, dict):
                continue
            entries: dict[str, str] = {}
            for key, status in messages.items():
                text = status.get("text") if isinstance(status, dict) else None
                if isinstance(text, str):
                    entries[str(key)] = text
            localization[str(locale)] = entries

        services: dict[str, str] = {}
        hub = payload.get(HUB_KEY) or {}
        if not isinstance(hub, dict):
            raise HubStateError(f"'{HUB_KEY}' must be an object")
        for name, service in hub.items():
            path = service.get("path") if isinstance(service, dict) else None
            if isinstance(path, str):
                services[str(name)] = path

        extra = {k: v for k, v in payload.items() if k not in KNOWN_KEYS}
        return cls(
            admin_id=admin_raw,
            operators=operators,
            localization=localization,
            services=services,
            extra=extra,
            raw_localization=dict(catalog),
            raw_services=dict(hub),
        )

    def to_dict(self) -> dict[str, Any]:
        # Entries skipped at load are re-emitted as they were read.
        localization = dict(self.raw_localization)
        for locale, messages in self.localization.items():
            section = _overlay_section(self.raw_localization.get(locale))
            for key, text in messages.items():
                section[key] = _overlay_entry(section.get(key), text=text)
            localization[locale] = section
        services = dict(self.raw_services)
        for name, path in self.services.items():
            services[name] = _overlay_entry(services.get(name), path=path)
        payload: dict[str, Any] = {
            ADMIN_KEY: self.admin_id,
            WHITELIST_KEY: {
                str(chat_id): operator.to_dict()
                for chat_id, operator in self.operators.items()
            },
            LOCALIZATION_KEY: localization,
            HUB_KEY: services,
        }
        payload.update(self.extra)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4, ensure_ascii=False) + "\n"

    def warnings(self) -> list[str]:
        issues: list[str] = []
        if self.admin_id and self.admin_id not in self.operators:
            issues.append(
                f"admin id {self.admin_id} is not in the whitelist; "
                "stop commands will be rejected"
            )
        if DEFAULT_LOCALE not in self.localization:
            issues.append(f"default locale '{DEFAULT_LOCALE}' has no messages")
        locales = {DEFAULT_LOCALE} | {op.locale for op in self.operators.values()}
        for locale in sorted(locales):
            if locale not in self.localization:
                if locale != DEFAULT_LOCALE:
                    issues.append(f"locale '{locale}' has no messages")
                continue
            absent = missing_keys(self.localization, locale)
            if absent:
                issues.append(
                    f"locale '{locale}' is missing messages: {', '.join(absent)}"
                )
        if not self.services:
            issues.append("no services registered under 'hub'")
        return issues


class HubStateStore:
    """
    Sole owner of the hub document.

    Operator reads and writes are serialized through one asyncio lock; the
    full document is written back on every locale change while the lock is
    held, so writes never interleave.
    """

    def __init__(
        self,
        path: Path,
        state: HubState,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._path = path
        self._state = state
        self._logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()

    @classmethod
    def load(
        cls, path: Path, *, logger: Optional[logging.Logger] = None
    ) -> "HubStateStore":
        try:
            data = read_json(path)
        except (OSError, ValueError) as exc:
            raise HubStateError(f"Failed to read hub document {path}: {exc}") from exc
        if data is None:
            raise HubStateError(f"Hub document not found: {path}")
        if not isinstance(data, dict):
            raise HubStateError(f"Hub document {path} must contain a JSON object")
        store = cls(path, HubState.from_dict(data), logger=logger)
        for issue in store._state.warnings():
            log_event(store._logger, logging.WARNING, "hub.config.warning", issue=issue)
        log_event(
            store._logger,
            logging.INFO,
            "hub.loaded",
            path=str(path),
            operators=len(store._state.operators),
            services=len(store._state.services),
        )
        return store

    @property
    def path(self) -> Path:
        return self._path

    @property
    def admin_id(self) -> int:
        return self._state.admin_id

    def warnings(self) -> list[str]:
        return self._state.warnings()

    def service_names(self) -> list[str]:
        return list(self._state.services)

    def service_path(self, name: str) -> Optional[str]:
        return self._state.services.get(name)

    def help_text(self) -> str:
        names = self.service_names()
        if not names:
            return ""
        return " ".join(f"/{name}" for name in names)

    async def is_allowed(self, chat_id: int) -> bool:
        async with self._lock:
            return chat_id in self._state.operators

    async def get_operator(self, chat_id: int) -> Optional[Operator]:
        async with self._lock:
            operator = self._state.operators.get(chat_id)
            return dataclasses.replace(operator) if operator else None

    async def operators(self) -> list[Operator]:
        async with self._lock:
            return [dataclasses.replace(op) for op in self._state.operators.values()]

    async def render(
        self, chat_id: int, key: str, *, locale: Optional[str] = None
    ) -> str:
        """Resolve `key` for the operator and substitute their display name."""
        async with self._lock:
            operator = self._state.operators.get(chat_id)
            username = operator.username if operator else ""
            if locale is None:
                locale = operator.locale if operator else DEFAULT_LOCALE
            template = resolve_template(
                self._state.localization, locale, key, logger=self._logger
            )
        return render_template(template, username)

    async def set_locale(self, chat_id: int, locale: str) -> Optional[Operator]:
        async with self._lock:
            operator = self._state.operators.get(chat_id)
            if operator is None:
                return None
            operator.locale = locale
            snapshot = dataclasses.replace(operator)
            content = self._state.to_json()
            try:
                await asyncio.to_thread(atomic_write, self._path, content)
            except OSError as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "hub.persist.failed",
                    path=str(self._path),
                    exc=exc,
                )
            else:
                log_event(
                    self._logger,
                    logging.INFO,
                    "hub.locale.updated",
                    chat_id=chat_id,
                    locale=locale,
                )
        return snapshot
