from __future__ import annotations

import logging
from typing import Mapping, Optional

from .logging_utils import log_event

DEFAULT_LOCALE = "en"
USERNAME_PLACEHOLDER = "%s"

MSG_WELCOME = "welcome"
MSG_MALFORMED = "malformed"
MSG_UNAUTHORIZED = "unauthorized"
MSG_UNIMPLEMENTED = "unimplemented"
MSG_SUCCESS = "success"
MSG_FAILURE = "failure"

MESSAGE_KEYS = (
    MSG_WELCOME,
    MSG_MALFORMED,
    MSG_UNAUTHORIZED,
    MSG_UNIMPLEMENTED,
    MSG_SUCCESS,
    MSG_FAILURE,
)

LocaleCatalog = Mapping[str, Mapping[str, str]]


def normalize_locale(payload: Optional[str]) -> str:
    """Map a locale-selection payload to a supported locale."""
    if payload == "it":
        return "it"
    return DEFAULT_LOCALE


def resolve_template(
    catalog: LocaleCatalog,
    locale: Optional[str],
    key: str,
    *,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Look up `key` for `locale`, falling back to the default locale and then
    to the key itself. Never returns an empty string.
    """
    logger = logger or logging.getLogger(__name__)
    if locale:
        text = catalog.get(locale, {}).get(key)
        if text:
            return text
    text = catalog.get(DEFAULT_LOCALE, {}).get(key)
    if text:
        log_event(
            logger,
            logging.WARNING,
            "localization.fallback",
            locale=locale,
            key=key,
            used=DEFAULT_LOCALE,
        )
        return text
    log_event(
        logger,
        logging.WARNING,
        "localization.fallback",
        locale=locale,
        key=key,
        used="key",
    )
    return key


def render_template(template: str, username: str) -> str:
    return template.replace(USERNAME_PLACEHOLDER, username)


def missing_keys(catalog: LocaleCatalog, locale: str) -> list[str]:
    entries = catalog.get(locale, {})
    return [key for key in MESSAGE_KEYS if not entries.get(key)]
