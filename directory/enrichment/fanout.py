"""
Translation fan-out: one translation job per locale a business is missing.
"""

import logging
from typing import List

from directory.models import Business, BusinessTranslation

logger = logging.getLogger(__name__)


def target_locales(region, base_locale: str = 'en') -> List[str]:
    locales = []
    for locale in region.supported_locales or []:
        if locale != base_locale and locale not in locales:
            locales.append(locale)
    return locales


def missing_locales(business: Business, base_locale: str = 'en') -> List[str]:
    """Target locales without a translation that has a description."""
    done = set(
        BusinessTranslation.objects.filter(business=business)
        .exclude(description__isnull=True)
        .exclude(description='')
        .values_list('locale', flat=True)
    )
    return [locale for locale in target_locales(business.region, base_locale) if locale not in done]


def queue_translations(business: Business, base_locale: str = 'en') -> List[str]:
    """Enqueue a TranslateWorker job per missing locale; returns the locales queued."""
    from directory.workers.translate import TranslateWorker

    queued = []
    for locale in missing_locales(business, base_locale):
        result = TranslateWorker.enqueue({
            'type': 'business',
            'id': business.pk,
            'target_locale': locale,
        })
        if result.conflict:
            logger.debug("Translation of business #%s to %s already queued", business.pk, locale)
        else:
            queued.append(locale)

    if queued:
        logger.info("Queued %d translations for business #%s: %s", len(queued), business.pk, ", ".join(queued))
    return queued
