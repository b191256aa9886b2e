"""Test harness configuration.

This repo uses a `src/` layout. Ensure tests always import the in-repo code
rather than an older installed `service_hub_bot`.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_path = str(repo_root / "src")
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


ADMIN_ID = 100
OPERATOR_ID = 200
ITALIAN_OPERATOR_ID = 300
STRANGER_ID = 999


def hub_document(**overrides: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "adminTelegramId": ADMIN_ID,
        "whitelist": {
            str(ADMIN_ID): {"username": "Ada", "locale": "en"},
            str(OPERATOR_ID): {"username": "Bob", "locale": "en"},
            str(ITALIAN_OPERATOR_ID): {"username": "Carla", "locale": "it"},
        },
        "localization": {
            "en": {
                "welcome": {"text": "Welcome %s!"},
                "malformed": {"text": "Sorry %s, I did not understand."},
                "unauthorized": {"text": "Not allowed."},
                "unimplemented": {"text": "Unknown service."},
                "success": {"text": "Done, %s."},
                "failure": {"text": "Something went wrong."},
            },
            "it": {
                "welcome": {"text": "Benvenuto %s!"},
                "malformed": {"text": "Comando non valido."},
                "unauthorized": {"text": "Non autorizzato."},
                "unimplemented": {"text": "Servizio sconosciuto."},
                "success": {"text": "Fatto, %s."},
                "failure": {"text": "Errore."},
            },
        },
        "hub": {
            "web": {"path": "/srv/web/"},
            "db": {"path": "/srv/db/"},
        },
    }
    document.update(overrides)
    return document


def write_hub_file(path: Path, document: Optional[dict[str, Any]] = None) -> Path:
    path.write_text(json.dumps(document or hub_document(), indent=4), encoding="utf-8")
    return path


class FakeBot:
    def __init__(self, *, fail_sends: bool = False) -> None:
        self.messages: list[dict[str, Any]] = []
        self.answered: list[str] = []
        self.batches: list[Any] = []
        self.offsets: list[int] = []
        self.fail_sends = fail_sends
        self.closed = False

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        if self.fail_sends:
            raise httpx.ConnectError("network down")
        self.messages.append(
            {"chat_id": chat_id, "text": text, "reply_markup": reply_markup}
        )
        return {"message_id": len(self.messages)}

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> bool:
        self.answered.append(callback_query_id)
        return True

    async def get_updates(self, *, offset: int, timeout: int = 0, allowed_updates=None):
        self.offsets.append(offset)
        if not self.batches:
            return []
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch

    async def close(self) -> None:
        self.closed = True

    def texts(self) -> list[str]:
        return [msg["text"] for msg in self.messages]


class FakeExecutor:
    def __init__(self, *, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[tuple[str, str]] = []

    async def invoke(self, path: str, script: str) -> bool:
        self.calls.append((path, script))
        return self.ok


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def hub_file(tmp_path: Path) -> Path:
    return write_hub_file(tmp_path / "hub.json")


@pytest.fixture()
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()
