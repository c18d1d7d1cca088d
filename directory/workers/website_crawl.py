"""
Research step 1: crawl the business website.

Stores the ``website`` research bundle and hands over to WebSearchWorker,
including when there is no website or the crawl failed.
"""

import logging

import requests

from directory.enrichment.config import PipelineConfig
from directory.enrichment.website_crawler import CrawlFailed, crawl_website, empty_bundle
from directory.models import Business, ResearchBundle
from directory.status import advance_status
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import Worker, register

logger = logging.getLogger(__name__)


@register
class WebsiteCrawlWorker(Worker):
    queue = 'research'
    max_attempts = 3
    unique = Unique(period=3600, fields=('args', 'queue', 'worker'))

    def perform(self, job: Job) -> None:
        from directory.workers.web_search import WebSearchWorker

        business_id = job.args.get('business_id')
        business = Business.objects.filter(pk=business_id).first()
        if business is None:
            logger.warning("Business #%s not found, skipping website crawl", business_id)
            return

        advance_status(business, Business.Status.RESEARCHING)

        if business.has_website:
            bundle = self.crawl(business)
            ResearchBundle.store(business, ResearchBundle.Kind.WEBSITE, bundle)
            logger.info(
                "Website crawl complete for %s: %d pages",
                business.name, bundle['pages_crawled'],
            )
        else:
            logger.info("No website for business #%s, skipping to web search", business_id)

        WebSearchWorker.enqueue({'business_id': business.pk})

    def crawl(self, business: Business) -> dict:
        config = PipelineConfig.from_settings()
        with requests.Session() as session:
            try:
                return crawl_website(
                    business.website,
                    max_pages=config.crawl_max_pages,
                    delay=config.crawl_delay_seconds,
                    session=session,
                )
            except CrawlFailed as exc:
                logger.warning("Website crawl failed for %s: %s", business.name, exc)
                return empty_bundle(str(exc))
