"""
Read-only pipeline summary for one region (or all of them).

Feeds ``GET /pipeline/status/``: status funnel, throughput, translation
coverage, job queue depths and research counters.
"""

from datetime import timedelta
from typing import Dict, Optional

from django.db.models import Count, Q
from django.utils import timezone

from directory.enrichment.config import PipelineConfig
from directory.enrichment.fanout import target_locales
from directory.models import Business, BusinessTranslation, Region, ResearchBundle
from directory.workers.batch_research import batch_active, eligible_businesses
from jobs import queue as job_queue

Status = Business.Status

# Statuses whose content is translated
TRANSLATABLE = (Status.ENRICHED, Status.VERIFIED)


def _businesses(region: Optional[Region]):
    qs = Business.objects.all()
    return qs.filter(region=region) if region is not None else qs


def status_funnel(region: Optional[Region] = None) -> Dict[str, int]:
    counts = {value: 0 for value in Status.values}
    rows = _businesses(region).order_by().values('status').annotate(count=Count('id'))
    for row in rows:
        counts[row['status']] = row['count']
    return counts


def throughput(region: Optional[Region] = None, now=None) -> Dict[str, int]:
    now = now or timezone.now()
    day_ago, week_ago = now - timedelta(hours=24), now - timedelta(days=7)
    enriched = _businesses(region).aggregate(
        day=Count('id', filter=Q(last_enriched_at__gte=day_ago)),
        week=Count('id', filter=Q(last_enriched_at__gte=week_ago)),
    )
    translations = BusinessTranslation.objects.filter(updated_at__gte=day_ago)
    if region is not None:
        translations = translations.filter(business__region=region)
    return {
        'enriched_24h': enriched['day'],
        'enriched_7d': enriched['week'],
        'translated_24h': translations.count(),
    }


def translation_coverage(region: Region, base_locale: str = 'en') -> Dict[str, dict]:
    """Share of enriched businesses with a translated description, per locale."""
    total = _businesses(region).filter(status__in=TRANSLATABLE).count()
    coverage = {}
    for locale in target_locales(region, base_locale):
        done = (
            BusinessTranslation.objects.filter(
                business__region=region,
                business__status__in=TRANSLATABLE,
                locale=locale,
            )
            .exclude(description__isnull=True)
            .exclude(description='')
            .count()
        )
        coverage[locale] = {
            'translated': done,
            'total': total,
            'ratio': round(done / total, 3) if total else None,
        }
    return coverage


def research_counters(region: Optional[Region] = None, now=None) -> dict:
    now = now or timezone.now()
    day_ago = now - timedelta(hours=24)
    funnel = status_funnel(region)

    bundles = ResearchBundle.objects.filter(updated_at__gte=day_ago)
    if region is not None:
        bundles = bundles.filter(business__region=region)
    crawls = bundles.filter(kind=ResearchBundle.Kind.WEBSITE)
    searches = bundles.filter(kind=ResearchBundle.Kind.SEARCH)
    crawl_failed = crawls.filter(data__has_key='error').count()
    search_empty = searches.filter(data__successful=0).count()

    return {
        'eligible': eligible_businesses(region.pk if region else None).count(),
        'researching': funnel[Status.RESEARCHING],
        'researched': funnel[Status.RESEARCHED],
        'enriched': funnel[Status.ENRICHED],
        'crawls_24h': {'ok': crawls.count() - crawl_failed, 'failed': crawl_failed},
        'searches_24h': {'ok': searches.count() - search_empty, 'failed': search_empty},
        'batch_active': batch_active(region.pk if region else None),
    }


def pipeline_status(region: Optional[Region] = None) -> dict:
    config = PipelineConfig.from_settings()
    return {
        'region': region.slug if region else None,
        'generated_at': timezone.now().isoformat(),
        'funnel': status_funnel(region),
        'throughput': throughput(region),
        'translation_coverage': translation_coverage(region, config.base_locale) if region else {},
        'jobs': job_queue.queue_depths(),
        'research': research_counters(region),
    }
