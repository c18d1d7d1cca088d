"""
Manually queue pipeline work. Everything runs later in ``run_jobs``.

Usage:
    python manage.py queue_pipeline discovery                      # region discovery scheduler
    python manage.py queue_pipeline discovery --city vigo --region galicia
    python manage.py queue_pipeline research --region galicia --batch-size 50
    python manage.py queue_pipeline research --status              # pending counts only
    python manage.py queue_pipeline enrich --researched --limit 20
    python manage.py queue_pipeline enrich --without-website
    python manage.py queue_pipeline enrich --business 42
    python manage.py queue_pipeline translate --business 42
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from directory.enrichment.config import PipelineConfig
from directory.enrichment.fanout import queue_translations
from directory.models import Business, City, Region
from directory.workers.batch_research import BatchResearchWorker, pending_count
from directory.workers.enrich import EnrichBusinessWorker, sweep_researched, sweep_without_website
from directory.workers.overpass_import import OverpassImportWorker
from directory.workers.region_discovery import RegionDiscoverySchedulerWorker

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Queue discovery, research, enrichment or translation jobs'

    def add_arguments(self, parser):
        parser.add_argument('stage', choices=['discovery', 'research', 'enrich', 'translate'])
        parser.add_argument('--region', type=str, default='', help='Region slug')
        parser.add_argument('--city', type=str, default='', help='City slug (discovery, needs --region)')
        parser.add_argument('--business', type=int, default=None, help='Business id')
        parser.add_argument('--batch-size', type=int, default=None, help='Research page size')
        parser.add_argument('--researched', action='store_true', help='Enrich researched businesses')
        parser.add_argument('--without-website', action='store_true', help='Enrich pending businesses without website')
        parser.add_argument('--limit', type=int, default=None, help='Sweep size (default: PIPELINE SWEEP_LIMIT)')
        parser.add_argument('--status', action='store_true', help='Only print pending research counts')

    def handle(self, *args, **options):
        region = self._region(options['region'])
        handler = getattr(self, f"_{options['stage']}")
        handler(region, options)

    def _region(self, slug):
        if not slug:
            return None
        region = Region.objects.filter(slug=slug).first()
        if region is None:
            raise CommandError(f"Unknown region: {slug}")
        return region

    def _report(self, label, result):
        if result.conflict:
            self.stdout.write(self.style.WARNING(f"{label}: already queued (job #{result.job.pk})"))
        else:
            self.stdout.write(self.style.SUCCESS(f"{label}: queued job #{result.job.pk}"))

    def _discovery(self, region, options):
        if not options['city']:
            self._report("Region discovery", RegionDiscoverySchedulerWorker.enqueue())
            return
        if region is None:
            raise CommandError("--city needs --region")
        city = City.objects.filter(region=region, slug=options['city']).first()
        if city is None:
            raise CommandError(f"Unknown city: {options['city']}")
        self._report(
            f"Discovery import for {city.name}",
            OverpassImportWorker.enqueue({'city_id': city.pk, 'region_id': region.pk}),
        )

    def _research(self, region, options):
        counts = pending_count(region.pk if region else None)
        for name, total in counts.items():
            self.stdout.write(f"  {name}: {total} pending with website")
        if options['status']:
            return
        if not counts:
            self.stdout.write("Nothing to research.")
            return
        self._report(
            "Batch research",
            BatchResearchWorker.queue_batch(
                region_id=region.pk if region else None,
                batch_size=options['batch_size'],
            ),
        )

    def _enrich(self, region, options):
        if options['business'] is not None:
            self._report(
                f"Enrichment of business #{options['business']}",
                EnrichBusinessWorker.enqueue({'business_id': options['business']}),
            )
            return
        if not (options['researched'] or options['without_website']):
            raise CommandError("Pass --business, --researched or --without-website")
        if options['researched']:
            queued = sweep_researched(options['limit'])
            self.stdout.write(self.style.SUCCESS(f"Queued {queued} enrichment jobs (researched)"))
        if options['without_website']:
            queued = sweep_without_website(options['limit'])
            self.stdout.write(self.style.SUCCESS(f"Queued {queued} enrichment jobs (no website)"))

    def _translate(self, region, options):
        if options['business'] is None:
            raise CommandError("translate needs --business")
        business = Business.objects.select_related('region').filter(pk=options['business']).first()
        if business is None:
            raise CommandError(f"Unknown business: {options['business']}")
        locales = queue_translations(business, base_locale=PipelineConfig.from_settings().base_locale)
        self.stdout.write(self.style.SUCCESS(
            f"Queued translations: {', '.join(locales) if locales else 'none missing'}"
        ))
