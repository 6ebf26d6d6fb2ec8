"""
Localization resolver.
Maps (key, language) to message text, loaded once from config/translations.json.
"""

import json
import logging
import os
from types import MappingProxyType
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "en")
SUPPORTED_LANGUAGES = ("en", "zh", "bn", "ta", "my", "id")


class Translator:
    """Read-only lookup table with a default-language fallback."""

    def __init__(self, texts: Mapping[str, Mapping[str, str]], default_language: str = DEFAULT_LANGUAGE):
        self._texts = MappingProxyType({
            key: MappingProxyType(dict(values)) for key, values in texts.items()
        })
        self.default_language = default_language

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Translator":
        """Load translations from JSON file."""
        config_path = path or os.path.join(
            os.path.dirname(__file__),
            '..', 'config', 'translations.json'
        )
        with open(config_path, 'r', encoding='utf-8') as f:
            texts: Dict[str, Dict[str, str]] = json.load(f)
        logger.info(f"Loaded {len(texts)} translation keys from {os.path.basename(config_path)}")
        return cls(texts)

    def resolve(self, key: str, language: str) -> str:
        """
        Get the text for a key in the requested language.

        Args:
            key: Localization key (e.g., 'phq4_q1')
            language: Language code (e.g., 'zh')

        Returns:
            Text in the requested language, else the default language, else the key itself
        """
        values = self._texts.get(key)
        if values is None:
            logger.warning(f"Missing translation key: {key}")
            return key
        return values.get(language) or values.get(self.default_language) or key

    def has_key(self, key: str) -> bool:
        return key in self._texts

    def __contains__(self, key: str) -> bool:
        return self.has_key(key)
