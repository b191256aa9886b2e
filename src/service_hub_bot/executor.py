from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional, Protocol

from .logging_utils import log_event
from .utils import resolve_executable

START_SCRIPT = "start.sh"
STOP_SCRIPT = "stop.sh"


class ScriptExecutor(Protocol):
    async def invoke(self, path: str, script: str) -> bool:
        """Run `path + script` to completion; True on a zero exit status."""
        ...


def script_path(path: str, script: str) -> str:
    # The configured prefix is expected to carry its own trailing separator.
    return path + script


class SudoScriptExecutor:
    """Runs service scripts through `sudo -u <user>`. Output is discarded."""

    def __init__(
        self,
        *,
        user: str = "root",
        sudo_binary: str = "sudo",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._user = user
        self._sudo_binary = sudo_binary
        self._logger = logger or logging.getLogger(__name__)

    def command(self, path: str, script: str) -> list[str]:
        sudo = resolve_executable(self._sudo_binary) or self._sudo_binary
        return [sudo, "-u", self._user, script_path(path, script)]

    async def invoke(self, path: str, script: str) -> bool:
        argv = self.command(path, script)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "service.script.failed",
                script=argv[-1],
                user=self._user,
                exc=exc,
            )
            return False
        try:
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            log_event(
                self._logger,
                logging.WARNING,
                "service.script.cancelled",
                script=argv[-1],
                user=self._user,
                returncode=process.returncode,
            )
            raise
        log_event(
            self._logger,
            logging.INFO if returncode == 0 else logging.WARNING,
            "service.script.finished",
            script=argv[-1],
            user=self._user,
            returncode=returncode,
        )
        return returncode == 0
