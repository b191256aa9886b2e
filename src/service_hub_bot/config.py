import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

BOT_TOKEN_ENV = "TELEGRAM_BOT_TOKEN"
HUB_FILE_ENV = "CONFIG_FILE_PATH"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "polling": {
        "interval_seconds": 5,
        "timeout_seconds": 0,
    },
    "concurrency": {
        "max_parallel": 8,
    },
    "executor": {
        "user": "root",
        "sudo_binary": "sudo",
    },
    "log": {
        "path": None,
        "max_bytes": 10_000_000,
        "backup_count": 3,
        "level": "INFO",
    },
}


class ConfigError(Exception):
    """Raised when configuration is invalid."""


@dataclasses.dataclass
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int


@dataclasses.dataclass(frozen=True)
class BotConfig:
    bot_token: Optional[str]
    hub_file: Optional[Path]
    poll_interval_seconds: float
    poll_timeout_seconds: int
    max_parallel: int
    executor_user: str
    sudo_binary: str
    log: Optional[LogConfig]
    log_level: int

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        settings: Optional[Dict[str, Any]] = None,
        root: Optional[Path] = None,
    ) -> "BotConfig":
        env = env if env is not None else dict(os.environ)
        cfg = _merge_defaults(DEFAULT_SETTINGS, settings or {})
        root = root or Path.cwd()

        bot_token = (env.get(BOT_TOKEN_ENV) or "").strip() or None
        hub_raw = (env.get(HUB_FILE_ENV) or "").strip()
        hub_file = Path(hub_raw).expanduser() if hub_raw else None

        polling = cfg["polling"]
        concurrency = cfg["concurrency"]
        executor = cfg["executor"]
        log_cfg = cfg["log"]
        try:
            poll_interval = float(polling["interval_seconds"])
            poll_timeout = int(polling["timeout_seconds"])
            max_parallel = int(concurrency["max_parallel"])
            max_bytes = int(log_cfg["max_bytes"])
            backup_count = int(log_cfg["backup_count"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc

        log = None
        if log_cfg.get("path"):
            log_path = Path(str(log_cfg["path"])).expanduser()
            if not log_path.is_absolute():
                log_path = root / log_path
            log = LogConfig(path=log_path, max_bytes=max_bytes, backup_count=backup_count)

        return cls(
            bot_token=bot_token,
            hub_file=hub_file,
            poll_interval_seconds=poll_interval,
            poll_timeout_seconds=poll_timeout,
            max_parallel=max_parallel,
            executor_user=str(executor.get("user") or ""),
            sudo_binary=str(executor.get("sudo_binary") or ""),
            log=log,
            log_level=_parse_level(log_cfg.get("level")),
        )

    def validate(self) -> None:
        issues: list[str] = []
        if not self.bot_token:
            issues.append(f"{BOT_TOKEN_ENV} must be set")
        if self.hub_file is None:
            issues.append(f"{HUB_FILE_ENV} must be set")
        if self.poll_interval_seconds <= 0:
            issues.append("polling.interval_seconds must be greater than 0")
        if self.poll_timeout_seconds < 0:
            issues.append("polling.timeout_seconds must not be negative")
        if self.max_parallel <= 0:
            issues.append("concurrency.max_parallel must be greater than 0")
        if not self.executor_user:
            issues.append("executor.user must be set")
        if not self.sudo_binary:
            issues.append("executor.sudo_binary must be set")
        if issues:
            raise ConfigError("; ".join(issues))


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _parse_level(value: Any) -> int:
    if isinstance(value, int):
        return value
    name = str(value or "INFO").strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ConfigError(f"Invalid log.level '{value}'")
    return level


def load_settings(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


def load_bot_config(
    settings_path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> BotConfig:
    """
    Build the process configuration.

    `.env` in the working directory is loaded first without overriding
    variables that are already exported. Settings paths are resolved
    relative to the settings file.
    """
    if env is None:
        load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
        env = dict(os.environ)
    settings: Dict[str, Any] = {}
    root = Path.cwd()
    if settings_path is not None:
        settings = load_settings(settings_path)
        root = settings_path.resolve().parent
    config = BotConfig.from_env(env, settings=settings, root=root)
    config.validate()
    return config
