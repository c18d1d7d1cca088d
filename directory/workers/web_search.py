"""
Research step 2: web search for reviews and local press.

Stores the ``search`` research bundle and marks the business researched.
"""

import logging

from directory.enrichment.config import PipelineConfig
from directory.enrichment.search_tools import build_searcher
from directory.enrichment.web_search import run_web_search
from directory.models import Business, ResearchBundle
from directory.status import advance_status
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import Worker, register

logger = logging.getLogger(__name__)


@register
class WebSearchWorker(Worker):
    queue = 'research'
    max_attempts = 3
    unique = Unique(period=3600, fields=('args', 'queue', 'worker'))

    def perform(self, job: Job) -> None:
        business_id = job.args.get('business_id')
        business = (
            Business.objects.select_related('region', 'city', 'category')
            .filter(pk=business_id)
            .first()
        )
        if business is None:
            logger.warning("Business #%s not found, skipping web search", business_id)
            return

        config = PipelineConfig.from_settings()
        bundle = run_web_search(
            business,
            build_searcher(config),
            max_results=config.search_max_results,
        )
        ResearchBundle.store(business, ResearchBundle.Kind.SEARCH, bundle)
        advance_status(business, Business.Status.RESEARCHED)
        logger.info(
            "Web search complete for %s: %d/%d queries successful",
            business.name, bundle['successful'], bundle['total_queries'],
        )
