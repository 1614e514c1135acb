"""Translation collaborator client."""
from typing import Optional
import requests
from shared.config import config
from shared.models import TranslationResult
import logging

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = {
    "en": "English",
    "mk": "Macedonian",
    "fr": "French",
    "es": "Spanish",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
}


class TranslationClient:
    """Calls the external translation service; failures degrade to an empty result."""

    def __init__(self, url: Optional[str] = None, timeout: float = config.TRANSLATION_TIMEOUT_SECONDS):
        self.url = url or config.TRANSLATION_SERVICE_URL
        self.timeout = timeout

    def translate(self, text: str, target_language: str, source_language: Optional[str] = None) -> TranslationResult:
        """Translate text into the target language.

        Args:
            text: Text to translate
            target_language: Target language code
            source_language: Source language code, or None to auto-detect

        Returns:
            TranslationResult; confidence 0.0 and empty text when the service failed
        """
        try:
            if not self.url:
                raise RuntimeError("Translation service URL is not configured")
            response = requests.post(
                self.url,
                json={
                    "text": text,
                    "targetLanguage": target_language,
                    "sourceLanguage": source_language or "auto",
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
            return TranslationResult(
                translated_text=data.get("translatedText", ""),
                source_language=data.get("detectedSourceLanguage") or source_language or "en",
                target_language=target_language,
                confidence=data.get("confidence", 0.95)
            )
        except Exception as e:
            logger.warning(f"Translation to {target_language} failed: {e}")
            return TranslationResult(
                translated_text="",
                source_language=source_language or "en",
                target_language=target_language,
                confidence=0.0
            )
