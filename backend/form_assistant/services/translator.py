"""
Translator adapter.

The session engine treats translation as an external collaborator: it calls
`translate(text, source_language, target_language, timeout=...)` and trusts
the result as-is. Implementations raise CollaboratorIOFailure when the
underlying service cannot be reached; deciding whether to degrade or to
surface that is the caller's business.
"""

import logging
from threading import Lock
from typing import Any, Dict, Optional, Protocol, Tuple

from form_assistant.errors import CollaboratorIOFailure, UnsupportedLanguage
from form_assistant.services.form_structure.languages import AUTO, MIXED, is_supported, language_name

logger = logging.getLogger(__name__)


class Translator(Protocol):
    """Structural type for translation collaborators."""

    def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        timeout: Optional[float] = None
    ) -> str:
        ...


def needs_translation(text: str, source_language: str, target_language: str) -> bool:
    """Whether a translate call would change anything."""
    if not text or not text.strip():
        return False
    return source_language != target_language


class IdentityTranslator:
    """Returns text unchanged. Used offline and in tests."""

    def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        timeout: Optional[float] = None
    ) -> str:
        return text


class LLMTranslator:
    """
    Translator backed by the shared inference client.

    Results are cached per (text, source, target) for the lifetime of the
    translator, so repeated prompts for the same label cost one call.
    """

    SYSTEM_PROMPT = """You are a translator for citizens filling in government forms.

RULES:
1. Translate the user's text from {source} into {target}.
2. Output ONLY the translated text, with no quotes, notes or explanations.
3. Keep names of people and places, numbers, dates and codes unchanged.
4. If the text is already in {target}, return it unchanged."""

    def __init__(self, inference_client: Any, timeout: Optional[float] = None, max_cache_entries: int = 2048):
        """
        Initialize the translator.

        Args:
            inference_client: Shared inference capability object
            timeout: Default timeout per translation call in seconds
            max_cache_entries: Cache size bound
        """
        self.client = inference_client
        self.timeout = timeout
        self.max_cache_entries = max_cache_entries
        self._cache: Dict[Tuple[str, str, str], str] = {}
        self._cache_lock = Lock()

    def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        timeout: Optional[float] = None
    ) -> str:
        """
        Translate text between language codes.

        Args:
            text: Text to translate
            source_language: Source code, or 'auto' / 'mixed' to let the model detect it
            target_language: Target code (must be supported)
            timeout: Call timeout in seconds

        Returns:
            Translated text

        Raises:
            UnsupportedLanguage: Unknown source or target code
            CollaboratorIOFailure: The inference service failed
        """
        if not is_supported(target_language):
            raise UnsupportedLanguage(target_language)
        if source_language not in (AUTO, MIXED) and not is_supported(source_language):
            raise UnsupportedLanguage(source_language)

        if not needs_translation(text, source_language, target_language):
            return text

        key = (text, source_language, target_language)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        source = "the detected language" if source_language in (AUTO, MIXED) else language_name(source_language)
        system_prompt = self.SYSTEM_PROMPT.format(source=source, target=language_name(target_language))

        try:
            translated = self.client.complete(
                system_prompt,
                text,
                timeout=timeout or self.timeout,
                service='translation',
                max_tokens=500
            )
        except Exception as e:
            logger.error(f"Translation {source_language}->{target_language} failed: {e}")
            raise CollaboratorIOFailure('translator', str(e)) from e

        translated = translated.strip()
        if not translated:
            raise CollaboratorIOFailure('translator', 'empty translation returned')

        with self._cache_lock:
            if len(self._cache) >= self.max_cache_entries:
                self._cache.pop(next(iter(self._cache)))
            self._cache[key] = translated
        return translated
