"""
Cron triggers for the pipeline -- Prefect @flows.

Each flow only inserts jobs; the work itself runs on the Celery workers
started by ``manage.py run_jobs``.
Schedules live in prefect.yaml:

  region-discovery        daily 03:00   RegionDiscoverySchedulerWorker
  enrich-researched       */5 min       EnrichBusinessWorker per researched business
  enrich-without-website  */10 min      EnrichBusinessWorker per pending business without website
  prune-jobs              */15 min      rescue orphaned jobs, re-send unclaimed ones, delete old finished ones

Usage (CLI):
    python -m directory.flows.triggers region-discovery
    python -m directory.flows.triggers enrich-researched --limit 20
"""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Any, Optional

from prefect import flow, get_run_logger


def _setup_django() -> None:
    """Prefect workers import flows outside manage.py."""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
    import django
    from django.apps import apps

    if not apps.ready:
        django.setup()


@flow(
    name="region-discovery",
    description="Queue discovery imports for under-populated cities and research batches for backlog regions",
    retries=0,
)
def region_discovery_flow() -> dict[str, Any]:
    _setup_django()
    from directory.workers.region_discovery import RegionDiscoverySchedulerWorker

    logger = get_run_logger()
    result = RegionDiscoverySchedulerWorker.enqueue()
    if result.conflict:
        logger.info("Region discovery already ran or is queued (job #%s)", result.job.pk)
    else:
        logger.info("Queued region discovery job #%s", result.job.pk)
    return {"job_id": result.job.pk, "conflict": result.conflict}


@flow(
    name="enrich-researched",
    description="Queue AI enrichment for researched businesses",
    retries=0,
)
def enrich_researched_flow(limit: Optional[int] = None) -> dict[str, Any]:
    _setup_django()
    from directory.workers.enrich import sweep_researched

    queued = sweep_researched(limit)
    get_run_logger().info("Queued %d enrichment jobs for researched businesses", queued)
    return {"queued": queued}


@flow(
    name="enrich-without-website",
    description="Queue AI enrichment for pending businesses that have no website to research",
    retries=0,
)
def enrich_without_website_flow(limit: Optional[int] = None) -> dict[str, Any]:
    _setup_django()
    from directory.workers.enrich import sweep_without_website

    queued = sweep_without_website(limit)
    get_run_logger().info("Queued %d enrichment jobs for businesses without website", queued)
    return {"queued": queued}


@flow(
    name="prune-jobs",
    description="Rescue orphaned jobs, re-send unclaimed jobs to Celery and delete old finished jobs",
    retries=0,
)
def prune_jobs_flow() -> dict[str, Any]:
    _setup_django()
    from django.conf import settings

    from jobs import queue as job_queue

    logger = get_run_logger()
    runner = settings.JOB_RUNNER
    rescued = job_queue.rescue_orphans(timedelta(minutes=runner["rescue_after_minutes"]))
    redispatched = job_queue.redispatch_stale(timedelta(minutes=runner["redispatch_after_minutes"]))
    pruned = job_queue.prune(timedelta(days=runner["prune_after_days"]))
    logger.info(
        "Rescued %d orphaned jobs, re-dispatched %d, pruned %d finished jobs",
        rescued, redispatched, pruned,
    )
    return {"rescued": rescued, "redispatched": redispatched, "pruned": pruned}


FLOWS = {
    "region-discovery": region_discovery_flow,
    "enrich-researched": enrich_researched_flow,
    "enrich-without-website": enrich_without_website_flow,
    "prune-jobs": prune_jobs_flow,
}


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run one pipeline trigger flow")
    parser.add_argument("flow", choices=sorted(FLOWS))
    parser.add_argument("--limit", type=int, default=None, help="Sweep size for the enrich flows")
    args = parser.parse_args()

    if args.flow.startswith("enrich-"):
        print(FLOWS[args.flow](limit=args.limit))
    else:
        print(FLOWS[args.flow]())
