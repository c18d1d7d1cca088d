"""
Discovery import worker: OSM businesses for one city.

    OverpassImportWorker.enqueue({'city_id': 12, 'region_id': 3})
"""

import logging

from directory.enrichment.config import PipelineConfig
from directory.enrichment.errors import ImportFailed
from directory.enrichment.importer import import_businesses
from directory.models import City
from jobs.models import Job
from jobs.queue import Unique
from jobs.workers import DiscardJob, Worker, register

logger = logging.getLogger(__name__)


@register
class OverpassImportWorker(Worker):
    queue = 'discovery'
    max_attempts = 2
    unique = Unique(period=600, fields=('args', 'queue'))

    def perform(self, job: Job) -> None:
        city_id = job.args.get('city_id')
        city = City.objects.select_related('region').filter(pk=city_id).first()
        if city is None:
            raise DiscardJob(f"City {city_id} not found")

        config = PipelineConfig.from_settings()
        try:
            result = import_businesses(city, city.region, radius_km=config.discovery_radius_km)
        except ImportFailed as exc:
            if exc.reason == 'no_coordinates':
                raise DiscardJob(str(exc)) from exc
            raise

        logger.info(
            "OverpassImport: %s - %d created, %d skipped, %d failed",
            city.name, result.created, result.skipped, result.failed,
        )
