"""
Region discovery scheduler.

Runs daily (Prefect deployment ``region-discovery``) and keeps the
pipeline moving without manual triggers:

1. Finds active regions with cities holding few or no businesses
2. Queues OverpassImportWorker for each of those cities
3. Queues BatchResearchWorker for regions with pending businesses that have a website

Adding a region or city in the admin is enough for it to be picked up.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.db.models import Count

from directory.enrichment.config import PipelineConfig
from directory.models import City, Region
from directory.workers.batch_research import BatchResearchWorker, eligible_businesses
from directory.workers.overpass_import import OverpassImportWorker
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import Worker, register

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryTotals:
    regions: int = 0
    discovery_jobs: int = 0
    research_batches: int = 0


def cities_needing_discovery(region: Region, threshold: int) -> List[City]:
    """Cities of ``region`` with fewer than ``threshold`` businesses, emptiest first."""
    return list(
        City.objects.filter(region=region)
        .annotate(business_count=Count('businesses'))
        .filter(business_count__lt=threshold)
        .order_by('business_count', 'name')
    )


def run_region_discovery(config: Optional[PipelineConfig] = None) -> DiscoveryTotals:
    config = config or PipelineConfig.from_settings()
    regions = list(Region.objects.filter(active=True).order_by('name'))
    totals = DiscoveryTotals(regions=len(regions))
    logger.info("RegionDiscovery: found %d active regions", len(regions))

    for region in regions:
        cities = cities_needing_discovery(region, config.discovery_city_threshold)
        if not cities:
            logger.info("RegionDiscovery: %s - all cities have sufficient businesses", region.name)
        for city in cities:
            logger.info("  -> queuing discovery for %s (%d businesses)", city.name, city.business_count)
            OverpassImportWorker.enqueue({'city_id': city.pk, 'region_id': region.pk})
            totals.discovery_jobs += 1

    for region in regions:
        pending = eligible_businesses(region.pk).count()
        if pending:
            logger.info(
                "RegionDiscovery: %s has %d pending businesses with websites, queuing research",
                region.name, pending,
            )
            BatchResearchWorker.queue_batch(region_id=region.pk)
            totals.research_batches += 1

    logger.info(
        "RegionDiscovery: complete, %d discovery jobs queued, %d research batches queued",
        totals.discovery_jobs, totals.research_batches,
    )
    return totals


@register
class RegionDiscoverySchedulerWorker(Worker):
    queue = 'default'
    max_attempts = 1
    unique = Unique(period=3600)

    def perform(self, job: Job) -> None:
        run_region_discovery()
