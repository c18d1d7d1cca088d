"""
Batch research controller.

Queues pending businesses that have a website through the research
pipeline one page at a time. Each page staggers its WebsiteCrawlWorker
jobs ``stagger`` seconds apart, and a full page schedules the next page
for when the current one has been spread out:

    BatchResearchWorker.queue_batch(region_id=3)        # whole backlog of region 3
    BatchResearchWorker.queue_batch(batch_size=50, offset=100)

A short page ends the chain. Re-running a page is harmless: eligibility is
recomputed and crawl jobs are unique per business.
"""

import logging
from typing import Dict, List, Optional, Tuple

from django.db.models import Count

from directory.enrichment.config import PipelineConfig
from directory.models import Business
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import Worker, register

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
STAGGER_SECONDS = 5
PROGRESS_EVERY = 25


def next_page(rows: int, batch_size: int, offset: int, stagger: float) -> Optional[Tuple[int, float]]:
    """``(next_offset, delay)`` after a page of ``rows`` results, or None when done."""
    if rows < batch_size or batch_size <= 0:
        return None
    return offset + batch_size, batch_size * stagger


def eligible_businesses(region_id: Optional[int] = None):
    qs = (
        Business.objects.filter(status=Business.Status.PENDING, website__isnull=False)
        .exclude(website='')
        .order_by('name', 'id')
    )
    if region_id is not None:
        qs = qs.filter(region_id=region_id)
    return qs


def pending_count(region_id: Optional[int] = None) -> Dict[str, int]:
    """Pending businesses with a website, per region name, largest first."""
    rows = (
        eligible_businesses(region_id)
        .order_by()
        .values('region__name')
        .annotate(total=Count('id'))
        .order_by('-total', 'region__name')
    )
    return {row['region__name']: row['total'] for row in rows}


def batch_active(region_id: Optional[int] = None) -> bool:
    """True while a batch for ``region_id`` (or any region) is queued or running."""
    jobs = Job.objects.filter(worker=BatchResearchWorker.name, state__in=Job.ACTIVE_STATES)
    if region_id is None:
        return jobs.exists()
    return any(job.args.get('region_id') == region_id for job in jobs.only('args'))


@register
class BatchResearchWorker(Worker):
    queue = 'default'
    max_attempts = 1
    unique = Unique(period=300, fields=('args', 'queue', 'worker'))

    @classmethod
    def queue_batch(
        cls,
        region_id: Optional[int] = None,
        batch_size: Optional[int] = None,
        offset: Optional[int] = None,
        schedule_in: Optional[float] = None,
    ):
        args = {}
        if region_id is not None:
            args['region_id'] = region_id
        if batch_size is not None:
            args['batch_size'] = batch_size
        if offset is not None:
            args['offset'] = offset
        return cls.enqueue(args, schedule_in=schedule_in)

    def perform(self, job: Job) -> None:
        config = PipelineConfig.from_settings()
        self.run_page(
            region_id=job.args.get('region_id'),
            batch_size=job.args.get('batch_size') or config.batch_size or DEFAULT_BATCH_SIZE,
            offset=job.args.get('offset') or 0,
            stagger=config.research_stagger_seconds,
        )

    def run_page(
        self,
        region_id: Optional[int],
        batch_size: int,
        offset: int,
        stagger: float = STAGGER_SECONDS,
    ) -> List[int]:
        """Queue one page of crawl jobs; returns the business ids queued."""
        from directory.workers.website_crawl import WebsiteCrawlWorker

        logger.info(
            "BatchResearch: finding pending businesses with websites (offset: %d, batch: %d)",
            offset, batch_size,
        )
        rows = list(
            eligible_businesses(region_id).values_list('id', 'name')[offset:offset + batch_size]
        )
        if not rows:
            logger.info("BatchResearch: no more businesses to process")
            return []

        for idx, (business_id, name) in enumerate(rows):
            WebsiteCrawlWorker.enqueue({'business_id': business_id}, schedule_in=idx * stagger)
            if idx and idx % PROGRESS_EVERY == 0:
                logger.info("BatchResearch: queued %d/%d (latest: %s)", idx, len(rows), name)

        logger.info(
            "BatchResearch: queued %d businesses, staggered over %ds",
            len(rows), len(rows) * stagger,
        )

        following = next_page(len(rows), batch_size, offset, stagger)
        if following is not None:
            next_offset, delay = following
            self.queue_batch(
                region_id=region_id,
                batch_size=batch_size,
                offset=next_offset,
                schedule_in=delay,
            )
            logger.info("BatchResearch: next batch (offset %d) scheduled in %ds", next_offset, delay)
        return [business_id for business_id, _ in rows]
