"""
Job execution: one claimed job (``execute``), one job by id as the Celery
task does (``run_job``), or synchronously until the queues are empty
(``drain``).

A job that blocks on a slow external call holds its Celery worker slot for
the duration. That is the backpressure mechanism: a queue never runs more
jobs at once than its worker concurrency.
"""

import logging
import math
import time
from datetime import datetime
from typing import Iterable, Optional

from django.utils import timezone

from config.alerting import send_alert
from config.logging_filters import correlation_scope
from jobs import queue as job_queue
from jobs.models import Job
from jobs.workers import DiscardJob, get_worker

logger = logging.getLogger(__name__)


def execute(job: Job) -> str:
    """Run a claimed job and record its outcome. Returns the new state."""
    with correlation_scope(f"job-{job.pk}"):
        worker_cls = get_worker(job.worker)
        if worker_cls is None:
            logger.error("Unknown worker %r for job #%s", job.worker, job.pk)
            job_queue.discard(job, f"unknown worker: {job.worker}")
            return job.state

        worker = worker_cls()
        started = time.monotonic()
        try:
            worker.perform(job)
        except DiscardJob as exc:
            logger.warning("%s#%s discarded: %s", job.worker, job.pk, exc)
            job_queue.discard(job, str(exc))
        except Exception as exc:
            logger.exception(
                "%s#%s failed (attempt %d/%d)",
                job.worker, job.pk, job.attempt, job.max_attempts,
            )
            job_queue.fail(
                job,
                f"{type(exc).__name__}: {exc}",
                backoff_seconds=worker.backoff(job.attempt),
            )
        else:
            job_queue.complete(job)
            logger.info("%s#%s completed in %.1fs", job.worker, job.pk, time.monotonic() - started)

        if job.state == Job.State.DISCARDED:
            send_alert(
                "warning",
                f"Job discarded: {job.worker}#{job.pk}",
                f"args={job.args} attempts={job.attempt} error={job.last_error}",
            )
    return job.state


def drain(
    queues: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
    max_jobs: int = 10000,
) -> int:
    """Execute due jobs synchronously until none are left. Returns the count.

    Without explicit ``queues`` every queue holding outstanding jobs is
    drained, including queues that only receive jobs during the drain.
    """
    fixed = list(queues) if queues is not None else None
    executed = 0
    while executed < max_jobs:
        claimed_any = False
        names = fixed if fixed is not None else sorted(set(
            Job.objects.filter(state__in=Job.ACTIVE_STATES)
            .order_by()
            .values_list('queue', flat=True)
        ))
        for name in names:
            for job in job_queue.claim(name, 1, now=now):
                claimed_any = True
                execute(job)
                executed += 1
        if not claimed_any:
            break
    return executed


def run_job(job_id: int) -> Optional[Job]:
    """Claim and execute one job by id. None when there was nothing to run."""
    job = job_queue.claim_job(job_id)
    if job is None:
        logger.debug("Job #%s not claimable, skipping", job_id)
        return None
    execute(job)
    return job


def retry_countdown(job: Job, now: Optional[datetime] = None) -> int:
    """Seconds until a retryable job is due again."""
    now = now or timezone.now()
    return max(0, math.ceil((job.scheduled_at - now).total_seconds()))
