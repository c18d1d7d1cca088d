"""
AI enrichment worker and the sweeps that feed it.

Two Prefect deployments run the sweeps: researched businesses every five
minutes, and pending businesses without a website (nothing to research)
every ten. Each sweep is bounded; the worker's uniqueness absorbs overlap
with jobs still in flight.
"""

import logging
from typing import List, Optional

from directory.enrichment.config import PipelineConfig
from directory.enrichment.engine import enrich_business
from directory.enrichment.errors import CompletionError, EnrichmentParseError
from directory.models import Business
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import DiscardJob, Worker, register

logger = logging.getLogger(__name__)

# Completion failures that will not go away on retry
PERMANENT_COMPLETION_REASONS = {'api_error', 'not_configured'}


@register
class EnrichBusinessWorker(Worker):
    queue = 'ai_enrich'
    max_attempts = 3
    unique = Unique(period=900, fields=('args', 'queue', 'worker'))

    def perform(self, job: Job) -> None:
        business_id = job.args.get('business_id')
        try:
            enrich_business(business_id)
        except EnrichmentParseError as exc:
            raise DiscardJob(f"Unparseable enrichment reply for business #{business_id}: {exc.reason}") from exc
        except CompletionError as exc:
            if not exc.transient and exc.reason in PERMANENT_COMPLETION_REASONS:
                raise DiscardJob(f"Enrichment of business #{business_id} failed: {exc}") from exc
            raise


def researched_ids(limit: int) -> List[int]:
    return list(
        Business.objects.filter(status=Business.Status.RESEARCHED)
        .order_by('updated_at', 'id')
        .values_list('id', flat=True)[:limit]
    )


def without_website_ids(limit: int) -> List[int]:
    qs = Business.objects.filter(status=Business.Status.PENDING)
    qs = qs.filter(website__isnull=True) | qs.filter(website='')
    return list(qs.order_by('created_at', 'id').values_list('id', flat=True)[:limit])


def _enqueue_all(ids: List[int]) -> int:
    queued = 0
    for business_id in ids:
        if not EnrichBusinessWorker.enqueue({'business_id': business_id}).conflict:
            queued += 1
    return queued


def sweep_researched(limit: Optional[int] = None) -> int:
    """Queue enrichment for researched businesses; returns the number of new jobs."""
    limit = limit or PipelineConfig.from_settings().sweep_limit
    queued = _enqueue_all(researched_ids(limit))
    logger.info("Enrichment sweep (researched): %d jobs queued", queued)
    return queued


def sweep_without_website(limit: Optional[int] = None) -> int:
    """Queue enrichment for pending businesses that have no website to research."""
    limit = limit or PipelineConfig.from_settings().sweep_limit
    queued = _enqueue_all(without_website_ids(limit))
    logger.info("Enrichment sweep (no website): %d jobs queued", queued)
    return queued
