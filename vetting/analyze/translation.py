"""Title translation for marketplace search (AliExpress English -> Portuguese)."""

from __future__ import annotations

from typing import Optional

from deep_translator import GoogleTranslator
from loguru import logger


class TitleTranslator:
    """Translates titles, returning the original text when translation fails."""

    def __init__(self, target: str = "pt", translator: Optional[GoogleTranslator] = None):
        self._translator = translator or GoogleTranslator(source="auto", target=target)

    def translate(self, text: str) -> str:
        if not text or not text.strip():
            return text
        try:
            translated = self._translator.translate(text)
            return translated or text
        except Exception as e:
            logger.debug("Translation failed for '{}': {}", text[:50], e)
            return text
