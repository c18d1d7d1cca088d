"""
Translation backends.

Both backends expose ``translate(text, locale, source_lang='en')`` and the
order-preserving ``translate_batch(texts, locale, source_lang='en')``:

  - DeepLTranslator: DeepL REST API. Without a key (outside production)
    it returns the input unchanged.
  - ClaudeTranslator: asks the completer to translate a JSON object of
    indexed strings and reads the same keys back.

``translate_fields`` flattens an entity's scalar and list fields into one
batch and rebuilds the original shape from the reply.
"""

import json
import logging
from typing import Dict, List, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from directory.enrichment.ai_clients import Completer, build_completer, ClaudeCLICompleter
from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import PipelineError, TranslationError
from directory.enrichment.json_extract import JSONExtractionError, extract_structured_json

logger = logging.getLogger(__name__)

LOCALE_NAMES = {
    'en': 'English',
    'es': 'Spanish',
    'nl': 'Dutch',
    'de': 'German',
    'fr': 'French',
    'pt': 'Portuguese',
    'gl': 'Galician',
    'it': 'Italian',
}

DEEPL_LANGS = {
    'en': 'EN',
    'es': 'ES',
    'nl': 'NL',
    'de': 'DE',
    'fr': 'FR',
    'pt': 'PT-PT',
    'it': 'IT',
}


def locale_display_name(locale: str) -> str:
    return LOCALE_NAMES.get(locale, locale)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, TranslationError):
        return exc.transient
    return False


class Translator:
    """Interface shared by the translation backends."""

    name = ''

    def translate(self, text: str, locale: str, source_lang: str = 'en') -> str:
        return self.translate_batch([text], locale, source_lang=source_lang)[0]

    def translate_batch(self, texts: List[str], locale: str, source_lang: str = 'en') -> List[str]:
        raise NotImplementedError


class DeepLTranslator(Translator):
    name = 'deepl'
    API_URL = "https://api.deepl.com/v2/translate"
    FREE_API_URL = "https://api-free.deepl.com/v2/translate"
    TIMEOUT = 30

    def __init__(self, api_key: str = '', production: bool = False):
        self.api_key = api_key
        self.production = production

    @property
    def url(self) -> str:
        # Free-plan keys end in ":fx" and live on a separate host
        return self.FREE_API_URL if self.api_key.endswith(':fx') else self.API_URL

    def translate_batch(self, texts, locale, source_lang='en') -> List[str]:
        if not texts:
            return []
        if not self.api_key:
            if self.production:
                raise TranslationError('not_configured', 'DEEPL_API_KEY not set')
            logger.warning("No DEEPL_API_KEY configured, returning original texts")
            return list(texts)

        body = {
            'text': list(texts),
            'target_lang': DEEPL_LANGS.get(locale, locale.upper()),
        }
        if source_lang:
            # DeepL rejects regional variants as source languages
            body['source_lang'] = DEEPL_LANGS.get(source_lang, source_lang.upper()).split('-')[0]

        try:
            data = self._post(body)
        except httpx.TimeoutException as exc:
            raise TranslationError('timeout', f"DeepL timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TranslationError('network_error', f"DeepL request failed: {exc}") from exc

        translated = [item.get('text', '') for item in data.get('translations') or []]
        if len(translated) != len(texts):
            raise TranslationError(
                'unexpected_response',
                f"DeepL returned {len(translated)} translations for {len(texts)} texts",
            )
        return translated

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _post(self, body: dict) -> dict:
        resp = httpx.post(
            self.url,
            json=body,
            headers={'Authorization': f"DeepL-Auth-Key {self.api_key}"},
            timeout=self.TIMEOUT,
        )
        if resp.status_code != 200:
            logger.error("DeepL API error: status=%s, body=%s", resp.status_code, resp.text[:500])
            raise TranslationError(
                'api_error',
                f"DeepL returned {resp.status_code}",
                status=resp.status_code,
                body=resp.text,
            )
        return resp.json()


class ClaudeTranslator(Translator):
    name = 'claude'

    def __init__(self, completer: Completer):
        self.completer = completer

    @staticmethod
    def build_prompt(payload: Dict[str, str], locale: str, source_lang: str = 'en') -> str:
        return (
            f"Translate the following JSON values from {locale_display_name(source_lang)} "
            f"to {locale_display_name(locale)} ({locale}).\n"
            "Keep the JSON keys exactly the same, only translate the string values.\n"
            "Return ONLY valid JSON, no markdown, no explanation.\n\n"
            f"{json.dumps(payload, ensure_ascii=False)}\n"
        )

    def translate_batch(self, texts, locale, source_lang='en') -> List[str]:
        if not texts:
            return []
        payload = {str(i): text for i, text in enumerate(texts)}
        prompt = self.build_prompt(payload, locale, source_lang)

        try:
            reply = self.completer.complete(prompt, max_tokens=4096)
            data = extract_structured_json(reply)
        except JSONExtractionError as exc:
            raise TranslationError('unexpected_response', str(exc)) from exc
        except PipelineError as exc:
            raise TranslationError(exc.reason, str(exc), **exc.details) from exc

        if not isinstance(data, dict):
            raise TranslationError('unexpected_response', f"Expected a JSON object, got {type(data).__name__}")
        missing = [key for key in payload if not isinstance(data.get(key), str)]
        if missing:
            raise TranslationError('unexpected_response', f"Reply is missing keys {missing}")
        return [data[key] for key in payload]


def translate_fields(
    translator: Translator,
    fields: Dict[str, object],
    locale: str,
    source_lang: str = 'en',
) -> Dict[str, object]:
    """Translate a dict of str and list-of-str values in one batch.

    Scalars go first, then list items in field order; the reply is split
    back by per-field counts so keys and list lengths are preserved.
    """
    scalars = [(key, value) for key, value in fields.items() if isinstance(value, str)]
    arrays = [(key, list(value)) for key, value in fields.items() if isinstance(value, (list, tuple))]

    texts = [value for _, value in scalars] + [item for _, items in arrays for item in items]
    if not texts:
        return {}

    translated = translator.translate_batch(texts, locale, source_lang=source_lang)
    if len(translated) != len(texts):
        raise TranslationError(
            'unexpected_response',
            f"Got {len(translated)} translations for {len(texts)} texts",
        )

    result: Dict[str, object] = {}
    position = 0
    for key, _ in scalars:
        result[key] = translated[position]
        position += 1
    for key, items in arrays:
        result[key] = translated[position:position + len(items)]
        position += len(items)
    return result


def build_translator(
    config: Optional[PipelineConfig] = None,
    completer: Optional[Completer] = None,
) -> Translator:
    """Claude when requested (or, on ``auto``, when the CLI is usable), else DeepL."""
    config = config or PipelineConfig.from_settings()
    backend = config.translation_backend

    if backend == 'claude':
        return ClaudeTranslator(completer or build_completer(config))
    if backend == 'auto' and config.cli_usable:
        return ClaudeTranslator(completer or ClaudeCLICompleter(config))
    return DeepLTranslator(config.deepl_api_key, production=config.is_production)
