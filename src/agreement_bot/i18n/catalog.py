"""
Message catalog — YAML translations for every user-visible string.

Each language lives in ``locales/<lang>.yaml`` as a nested mapping;
nesting is flattened into dotted keys (``rent.title_prompt``).
Placeholders are positional: ``{0}``, ``{1}``...

Lookup order for a key:
  1. the requested language
  2. the default language
  3. the key itself (so a missing translation is visible, never fatal)

Usage:
    from agreement_bot.i18n.catalog import localize
    text = localize("en", "rent.success", "Flat 3B", 14)
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from agreement_bot.config import settings

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).parent / "locales"


def _flatten(tree: dict[str, Any], prefix: str = "") -> dict[str, str]:
    flat: dict[str, str] = {}
    for key, value in tree.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{dotted}."))
        else:
            flat[dotted] = str(value)
    return flat


class Catalog:
    def __init__(self, directory: Path = LOCALES_DIR, default_language: str = "tr") -> None:
        self.directory = directory
        self.default_language = default_language
        self._messages: dict[str, dict[str, str]] | None = None

    def load(self) -> dict[str, dict[str, str]]:
        """Read every ``*.yaml`` in the directory. Unreadable files are skipped."""
        messages: dict[str, dict[str, str]] = {}
        for path in sorted(self.directory.glob("*.yaml")):
            try:
                tree = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Cannot load locale %s: %s", path, e)
                continue
            messages[path.stem] = _flatten(tree)
        logger.info("Loaded %d locales: %s", len(messages), ", ".join(messages) or "-")
        self._messages = messages
        return messages

    @property
    def languages(self) -> list[str]:
        return sorted(self._get())

    def _get(self) -> dict[str, dict[str, str]]:
        if self._messages is None:
            return self.load()
        return self._messages

    def __call__(self, locale: str, key: str, *args: object) -> str:
        messages = self._get()
        template = messages.get(locale, {}).get(key)
        if template is None:
            template = messages.get(self.default_language, {}).get(key)
        if template is None:
            logger.warning("Missing translation: %s (%s)", key, locale)
            return key
        if not args:
            return template
        try:
            return template.format(*args)
        except (IndexError, KeyError, ValueError) as e:
            logger.warning("Bad placeholders in %s (%s): %s", key, locale, e)
            return template


# Module-level catalog, import ``localize`` wherever text is needed
localize = Catalog(default_language=settings.default_language)
