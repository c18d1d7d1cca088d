"""
Translation worker: one entity into one locale.

    TranslateWorker.enqueue({'type': 'business', 'id': 7, 'target_locale': 'es'})

``type`` is business, category or city. A missing entity, or one with
nothing to translate, completes without writing anything.
"""

import logging
from typing import Dict, Optional

from django.db import transaction

from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import TranslationError
from directory.enrichment.translation import Translator, build_translator, translate_fields
from directory.models import (
    Business,
    BusinessTranslation,
    Category,
    CategoryTranslation,
    City,
    CityTranslation,
)
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import DiscardJob, Worker, register

logger = logging.getLogger(__name__)

BUSINESS_FIELDS = ('description', 'summary', 'highlights', 'warnings', 'integration_tips', 'cultural_notes')
BUSINESS_LIST_FIELDS = ('highlights', 'warnings', 'integration_tips', 'cultural_notes')


def _non_empty(value) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return False


def collect_fields(obj, names) -> Dict[str, object]:
    return {name: getattr(obj, name) for name in names if _non_empty(getattr(obj, name, None))}


def _translate_business(business_id: int, locale: str, translator: Translator, base_locale: str) -> bool:
    business = Business.objects.filter(pk=business_id).first()
    if business is None:
        logger.warning("TranslateWorker: business %s not found", business_id)
        return False

    fields = collect_fields(business, BUSINESS_FIELDS)
    if not fields:
        logger.info("TranslateWorker: business %s has no content to translate", business_id)
        return False

    translated = translate_fields(translator, fields, locale, source_lang=base_locale)
    defaults = {
        'description': translated.get('description'),
        'summary': translated.get('summary'),
        'content_source': 'ai_generated',
        'source_locale': base_locale,
    }
    for name in BUSINESS_LIST_FIELDS:
        defaults[name] = translated.get(name) or []

    with transaction.atomic():
        BusinessTranslation.objects.update_or_create(business=business, locale=locale, defaults=defaults)
    return True


def _translate_category(category_id: int, locale: str, translator: Translator, base_locale: str) -> bool:
    category = Category.objects.filter(pk=category_id).first()
    if category is None:
        return False
    fields = collect_fields(category, ('name', 'description'))
    if not fields:
        return False

    translated = translate_fields(translator, fields, locale, source_lang=base_locale)
    with transaction.atomic():
        CategoryTranslation.objects.update_or_create(
            category=category,
            locale=locale,
            defaults={
                'name': translated.get('name', ''),
                'description': translated.get('description', ''),
            },
        )
    return True


def _translate_city(city_id: int, locale: str, translator: Translator, base_locale: str) -> bool:
    city = City.objects.filter(pk=city_id).first()
    if city is None or not _non_empty(city.description):
        return False

    description = translator.translate(city.description, locale, source_lang=base_locale)
    with transaction.atomic():
        CityTranslation.objects.update_or_create(
            city=city, locale=locale, defaults={'description': description},
        )
    return True


HANDLERS = {
    'business': _translate_business,
    'category': _translate_category,
    'city': _translate_city,
}


def translate_entity(
    entity_type: str,
    entity_id: int,
    locale: str,
    translator: Optional[Translator] = None,
    config: Optional[PipelineConfig] = None,
) -> bool:
    """Translate and upsert one entity. Returns True when a row was written.

    Raises ValueError for an unknown ``entity_type`` and TranslationError
    when the backend fails.
    """
    handler = HANDLERS.get(entity_type)
    if handler is None:
        raise ValueError(f"Unknown translation type: {entity_type!r}")

    config = config or PipelineConfig.from_settings()
    translator = translator or build_translator(config)
    written = handler(entity_id, locale, translator, config.base_locale)
    if written:
        logger.info("TranslateWorker: translated %s %s to %s", entity_type, entity_id, locale)
    return written


@register
class TranslateWorker(Worker):
    queue = 'translations'
    max_attempts = 3
    unique = Unique(period=300, fields=('args', 'queue'))

    def perform(self, job: Job) -> None:
        args = job.args
        logger.info("TranslateWorker: translating %s %s to %s", args.get('type'), args.get('id'), args.get('target_locale'))
        try:
            translate_entity(args.get('type'), args.get('id'), args.get('target_locale'))
        except ValueError as exc:
            raise DiscardJob(str(exc)) from exc
        except TranslationError as exc:
            if not exc.transient and exc.reason in ('api_error', 'not_configured'):
                raise DiscardJob(f"Translation failed: {exc}") from exc
            raise
