"""Localized user-facing messages."""

from __future__ import annotations

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

_LOCALES_DIR = Path(__file__).with_name("locales")
DEFAULT_LOCALE = "en"


@lru_cache
def load_locale(locale: str = DEFAULT_LOCALE) -> dict[str, str]:
    """Messages for ``locale``, then its language (``zh-CN`` -> ``zh``), then English."""
    file = _LOCALES_DIR / f"{DEFAULT_LOCALE}.json"  # fallback
    if locale.replace("_", "").replace("-", "").isalpha():
        for candidate in (locale, re.split(r"[-_]", locale)[0]):
            if (_LOCALES_DIR / f"{candidate}.json").exists():
                file = _LOCALES_DIR / f"{candidate}.json"
                break
    return json.loads(file.read_text(encoding="utf-8"))


def get_message(key: str, locale: str = DEFAULT_LOCALE, **kwargs: Any) -> str:
    """Return the message for ``key``, formatted with ``kwargs``."""
    messages = load_locale(locale)
    template = messages.get(key)
    if template is None:
        template = load_locale(DEFAULT_LOCALE)[key]
    return template.format(**kwargs) if kwargs else template
