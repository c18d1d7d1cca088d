"""
Enrichment engine: business + research -> AI reply -> Business attributes.

    engine = EnrichmentEngine(build_completer())
    attrs = engine.enrich(business, load_research(business.id))

``enrich`` raises CompletionError when the backend fails and
EnrichmentParseError when the reply is not usable JSON. The business is
only written by ``enrich_business``, and only after a successful parse.
"""

import logging
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from directory.enrichment.ai_clients import Completer, build_completer
from directory.enrichment.config import PipelineConfig
from directory.enrichment.json_extract import extract_structured_json
from directory.enrichment.prompts import ResearchData, build_enrichment_prompt, load_research
from directory.enrichment.schemas import parse_reply
from directory.models import Business
from directory.status import advance_status

logger = logging.getLogger(__name__)

MAX_TOKENS_WITH_RESEARCH = 3000
MAX_TOKENS_DEFAULT = 2048


class EnrichmentEngine:
    def __init__(self, completer: Completer):
        self.completer = completer

    def enrich(
        self,
        business: Business,
        research: Optional[ResearchData] = None,
        category_slugs: Optional[List[str]] = None,
    ) -> dict:
        """Return the attributes to write on ``business``.

        Only fields present in the reply are returned; absent ones must be
        left as they are.
        """
        research = research or ResearchData()
        prompt = build_enrichment_prompt(business, research, category_slugs=category_slugs)
        max_tokens = MAX_TOKENS_WITH_RESEARCH if research.has_data else MAX_TOKENS_DEFAULT

        logger.info(
            "Enriching business #%s %s (research: website=%s search=%s)",
            business.pk, business.name, research.website is not None, research.search is not None,
        )
        text = self.completer.complete(prompt, max_tokens=max_tokens)
        return parse_reply(extract_structured_json(text)).to_attrs()


def apply_enrichment(business: Business, attrs: dict) -> bool:
    """Write ``attrs`` and mark the business enriched.

    Returns False when the business is in a state enrichment may not
    touch (verified or rejected); nothing is written in that case.
    """
    with transaction.atomic():
        advanced = advance_status(
            business,
            Business.Status.ENRICHED,
            last_enriched_at=timezone.now(),
            **attrs,
        )
    if advanced:
        logger.info("Enriched business #%s with %d fields", business.pk, len(attrs))
    return advanced


def enrich_business(
    business_id: int,
    completer: Optional[Completer] = None,
    config: Optional[PipelineConfig] = None,
) -> bool:
    """Enrich one business end to end and fan out its translations.

    Returns False when the business no longer exists or may not be
    enriched. Client and parse errors propagate to the caller.
    """
    from directory.enrichment.fanout import queue_translations

    business = (
        Business.objects.select_related('region', 'city', 'category')
        .filter(pk=business_id)
        .first()
    )
    if business is None:
        logger.warning("Business #%s not found, skipping enrichment", business_id)
        return False

    config = config or PipelineConfig.from_settings()
    engine = EnrichmentEngine(completer or build_completer(config))
    attrs = engine.enrich(business, load_research(business.pk))

    if not apply_enrichment(business, attrs):
        return False
    queue_translations(business, base_locale=config.base_locale)
    return True
