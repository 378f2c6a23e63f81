"""Client for the hosted text translation function.

The console translates its menus and messages when a non-English language is
selected. The remote function accepts ``{"text", "targetLanguage"}`` as JSON
and answers with ``{"translatedText": ...}``.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from stores.config import DEFAULT_TRANSLATE_TIMEOUT_SECONDS, DEFAULT_TRANSLATE_URL, Settings

__all__ = ["TranslationError", "TranslationClient", "Translator"]

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5
SOURCE_LANGUAGE = "en"


class TranslationError(RuntimeError):
    """Raised when the translation function fails or answers unexpectedly."""


class TranslationClient:
    """Thin HTTP client for the translation function."""

    def __init__(
        self,
        *,
        url: str = DEFAULT_TRANSLATE_URL,
        timeout: float = DEFAULT_TRANSLATE_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url:
            raise ValueError("url must be provided")
        self.url = url
        self.timeout = timeout
        self._session = session or self._build_session(
            max_retries=max_retries, backoff_factor=backoff_factor
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TranslationClient":
        return cls(url=settings.translate_url, timeout=settings.translate_timeout)

    @staticmethod
    def _build_session(*, max_retries: int, backoff_factor: float) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            connect=max_retries,
            read=max_retries,
            status=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("POST",),
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def translate(self, text: str, target_language: str) -> str:
        if not target_language:
            raise ValueError("target_language must be provided")
        payload = {"text": text, "targetLanguage": target_language}
        try:
            response = self._session.post(
                self.url,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Translation request failed: %s", exc)
            raise TranslationError("Failed to reach the translation service") from exc

        if response.status_code != 200:
            logger.error(
                "Translation service error: status=%s body=%s",
                response.status_code,
                response.text[:512],
            )
            raise TranslationError(
                f"Translation service responded with status {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TranslationError("Translation service returned invalid JSON") from exc
        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not isinstance(translated, str):
            raise TranslationError("Translation response missing translatedText")
        return translated


class Translator:
    """Translate console text into one language, falling back to English.

    Results are cached per text. English output never touches the network.
    """

    def __init__(self, language: str = SOURCE_LANGUAGE, client: Optional[TranslationClient] = None) -> None:
        self.language = (language or SOURCE_LANGUAGE).strip().lower()
        self._client = client
        self._cache: Dict[Tuple[str, str], str] = {}

    @property
    def enabled(self) -> bool:
        return self.language != SOURCE_LANGUAGE

    def __call__(self, text: str) -> str:
        if not self.enabled or not text.strip():
            return text
        key = (self.language, text)
        if key in self._cache:
            return self._cache[key]
        if self._client is None:
            self._client = TranslationClient()
        try:
            translated = self._client.translate(text, self.language)
        except TranslationError as exc:
            logger.warning("Showing untranslated text (%s): %s", self.language, exc)
            return text
        self._cache[key] = translated
        return translated
