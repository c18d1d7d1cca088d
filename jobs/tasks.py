"""
Celery task that executes ledger jobs.

Every job row is sent as ``perform_job(job_id)`` to the Celery queue named
after ``Job.queue``. The task claims the row, runs the worker, and for a
failed attempt with attempts left asks Celery to redeliver it after the
worker's backoff.
"""

import logging

from celery import shared_task

from jobs.models import Job
from jobs.runner import retry_countdown, run_job

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="jobs.perform_job", acks_late=True, max_retries=None)
def perform_job(self, job_id: int):
    job = run_job(job_id)
    if job is None:
        return None
    if job.state == Job.State.RETRYABLE:
        countdown = retry_countdown(job)
        logger.info("%s#%s retrying in %ds", job.worker, job.pk, countdown)
        raise self.retry(countdown=countdown, max_retries=job.max_attempts)
    return job.state
