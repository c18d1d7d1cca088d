"""
Job ledger operations on the ``jobs`` table.

The table records every job and its state; Celery carries the execution.
Each inserted job is sent to its Celery queue once the inserting
transaction commits (``eta`` = scheduled_at). The Celery task claims the
row before running it, so a message delivered twice, or a job already run
by ``drain``, executes once.

Life of a job:
    insert -> available | scheduled          (dispatched on commit)
    claim / claim_job -> executing (attempt += 1)
    complete -> completed
    fail   -> retryable (scheduled_at = now + backoff) | discarded (attempts exhausted)
    discard / cancel -> discarded / cancelled

Uniqueness:
    A job inserted with a ``Unique`` option gets a ``unique_key`` derived from
    the selected fields (worker, queue, args). A second insert with the same
    key is refused, and the existing job returned, when the existing job is
    still outstanding (enforced by a partial unique index, so concurrent
    inserters cannot both win) or finished inside the uniqueness period.

Claiming uses SELECT ... FOR UPDATE SKIP LOCKED so several workers can
share one PostgreSQL database. On SQLite the lock clause is a no-op.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Max, Q
from django.utils import timezone
from kombu.exceptions import OperationalError

from jobs.models import Job

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000

# Celery may deliver an eta message slightly before the row is due on this host
CLOCK_SKEW_SECONDS = 5

CLAIMABLE_STATES = (Job.State.AVAILABLE, Job.State.SCHEDULED, Job.State.RETRYABLE)


@dataclass(frozen=True)
class Unique:
    """Uniqueness options for a worker's jobs.

    period: seconds a finished job keeps blocking duplicates (None = forever)
    fields: which of worker/queue/args form the key
    states: finished states that count toward the period check
    """
    period: Optional[int] = 60
    fields: tuple = ('args', 'queue', 'worker')
    states: tuple = (Job.State.COMPLETED,)


@dataclass
class InsertResult:
    job: Job
    conflict: bool = False


def compute_unique_key(worker: str, queue: str, args: dict, fields) -> str:
    """Stable hash of the selected job fields."""
    material = {}
    if 'worker' in fields:
        material['worker'] = worker
    if 'queue' in fields:
        material['queue'] = queue
    if 'args' in fields:
        material['args'] = args
    encoded = json.dumps(material, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode('utf-8')).hexdigest()


def backoff(attempt: int) -> int:
    """Seconds to wait before retry number ``attempt``: 15 + attempt^4."""
    return 15 + attempt ** 4


def _find_duplicate(key: str, unique: Unique, now: datetime) -> Optional[Job]:
    condition = Q(state__in=Job.ACTIVE_STATES)
    finished = [s for s in unique.states if s not in Job.ACTIVE_STATES]
    if finished:
        window = Q(state__in=finished)
        if unique.period is not None:
            window &= Q(inserted_at__gte=now - timedelta(seconds=unique.period))
        condition |= window
    return (
        Job.objects.filter(unique_key=key)
        .filter(condition)
        .order_by('-inserted_at')
        .first()
    )


def insert(
    worker: str,
    args: Optional[dict] = None,
    *,
    queue: str = 'default',
    max_attempts: int = 20,
    scheduled_at: Optional[datetime] = None,
    schedule_in: Optional[float] = None,
    unique: Optional[Unique] = None,
) -> InsertResult:
    """Insert a job, honouring uniqueness. Returns the new or existing job."""
    args = args or {}
    now = timezone.now()
    if scheduled_at is None:
        scheduled_at = now + timedelta(seconds=schedule_in) if schedule_in else now
    state = Job.State.SCHEDULED if scheduled_at > now else Job.State.AVAILABLE
    key = compute_unique_key(worker, queue, args, unique.fields) if unique else None

    with transaction.atomic():
        if key:
            existing = _find_duplicate(key, unique, now)
            if existing is not None:
                logger.debug("Duplicate %s job refused, existing #%s [%s]", worker, existing.pk, existing.state)
                return InsertResult(job=existing, conflict=True)

        try:
            with transaction.atomic():
                job = Job.objects.create(
                    worker=worker,
                    queue=queue,
                    args=args,
                    state=state,
                    max_attempts=max_attempts,
                    unique_key=key,
                    inserted_at=now,
                    scheduled_at=scheduled_at,
                )
        except IntegrityError:
            if key is None:
                raise
            # Lost the race against a concurrent insert of the same key
            existing = Job.objects.filter(unique_key=key, state__in=Job.ACTIVE_STATES).first()
            if existing is None:
                raise
            return InsertResult(job=existing, conflict=True)

        dispatch_on_commit(job)

    logger.debug("Inserted %s#%s on %s at %s", worker, job.pk, queue, scheduled_at.isoformat())
    return InsertResult(job=job)


def dispatch(job: Job) -> bool:
    """Send a job to its Celery queue. Returns False when the broker is unreachable.

    A job that could not be sent stays in the table and is picked up by
    ``redispatch_stale``.
    """
    from jobs.tasks import perform_job

    try:
        perform_job.apply_async((job.pk,), queue=job.queue, eta=job.scheduled_at)
    except OperationalError as exc:
        logger.warning("Could not dispatch %s#%s to Celery: %s", job.worker, job.pk, exc)
        return False
    return True


def dispatch_on_commit(job: Job) -> None:
    transaction.on_commit(lambda: dispatch(job))


def _mark_executing(job: Job, now: datetime) -> None:
    job.state = Job.State.EXECUTING
    job.attempt += 1
    job.attempted_at = now
    job.save(update_fields=['state', 'attempt', 'attempted_at'])


def claim(queue: str, limit: int, now: Optional[datetime] = None) -> List[Job]:
    """Move up to ``limit`` due jobs of ``queue`` to executing and return them."""
    if limit <= 0:
        return []
    now = now or timezone.now()
    with transaction.atomic():
        jobs = list(
            Job.objects.select_for_update(skip_locked=True)
            .filter(queue=queue, state__in=CLAIMABLE_STATES, scheduled_at__lte=now)
            .order_by('scheduled_at', 'id')[:limit]
        )
        for job in jobs:
            _mark_executing(job, now)
    return jobs


def claim_job(job_id: int, now: Optional[datetime] = None) -> Optional[Job]:
    """Move one due job to executing. None when it is gone, finished, running or not yet due."""
    now = now or timezone.now()
    with transaction.atomic():
        job = (
            Job.objects.select_for_update(skip_locked=True)
            .filter(
                pk=job_id,
                state__in=CLAIMABLE_STATES,
                scheduled_at__lte=now + timedelta(seconds=CLOCK_SKEW_SECONDS),
            )
            .first()
        )
        if job is None:
            return None
        _mark_executing(job, now)
    return job


def complete(job: Job) -> Job:
    job.state = Job.State.COMPLETED
    job.completed_at = timezone.now()
    job.save(update_fields=['state', 'completed_at'])
    return job


def _record_error(job: Job, error: str, now: datetime) -> None:
    job.errors = [
        *(job.errors or []),
        {'attempt': job.attempt, 'at': now.isoformat(), 'error': error[:MAX_ERROR_LENGTH]},
    ]


def fail(job: Job, error: str, backoff_seconds: Optional[int] = None) -> Job:
    """Record a failed attempt. Retries until max_attempts, then discards."""
    now = timezone.now()
    _record_error(job, error, now)
    if job.attempt >= job.max_attempts:
        job.state = Job.State.DISCARDED
        job.discarded_at = now
    else:
        delay = backoff(job.attempt) if backoff_seconds is None else backoff_seconds
        job.state = Job.State.RETRYABLE
        job.scheduled_at = now + timedelta(seconds=delay)
    job.save(update_fields=['state', 'errors', 'discarded_at', 'scheduled_at'])
    return job


def discard(job: Job, reason: str) -> Job:
    """Fail a job permanently, regardless of remaining attempts."""
    now = timezone.now()
    _record_error(job, reason, now)
    job.state = Job.State.DISCARDED
    job.discarded_at = now
    job.save(update_fields=['state', 'errors', 'discarded_at'])
    return job


def cancel(job: Job) -> Job:
    if job.state in Job.FINISHED_STATES:
        return job
    job.state = Job.State.CANCELLED
    job.cancelled_at = timezone.now()
    job.save(update_fields=['state', 'cancelled_at'])
    return job


def retry(job: Job) -> Job:
    """Make a finished job available again with a fresh attempt budget."""
    if job.is_active:
        return job
    job.state = Job.State.AVAILABLE
    job.scheduled_at = timezone.now()
    job.max_attempts = max(job.max_attempts, job.attempt + 1)
    job.completed_at = job.discarded_at = job.cancelled_at = None
    # Raises IntegrityError when an identical job is already outstanding
    with transaction.atomic():
        job.save(update_fields=[
            'state', 'scheduled_at', 'max_attempts',
            'completed_at', 'discarded_at', 'cancelled_at',
        ])
        dispatch_on_commit(job)
    return job


def rescue_orphans(older_than: timedelta) -> int:
    """Recover jobs left executing by a worker that died mid-job."""
    now = timezone.now()
    rescued = 0
    stuck = Job.objects.filter(state=Job.State.EXECUTING, attempted_at__lt=now - older_than)
    for job in stuck:
        _record_error(job, "orphaned: worker stopped while executing", now)
        if job.attempt >= job.max_attempts:
            job.state = Job.State.DISCARDED
            job.discarded_at = now
        else:
            job.state = Job.State.AVAILABLE
            job.scheduled_at = now
        job.save(update_fields=['state', 'errors', 'discarded_at', 'scheduled_at'])
        if job.state == Job.State.AVAILABLE:
            dispatch_on_commit(job)
        rescued += 1
    if rescued:
        logger.warning("Rescued %d orphaned jobs", rescued)
    return rescued


def redispatch_stale(older_than: timedelta, now: Optional[datetime] = None) -> int:
    """Re-send outstanding jobs that were due ``older_than`` ago but never claimed.

    Covers messages lost by the broker or never sent because it was down.
    A job that does get a second message still runs once.
    """
    now = now or timezone.now()
    stale = Job.objects.filter(state__in=CLAIMABLE_STATES, scheduled_at__lt=now - older_than)
    sent = sum(1 for job in stale if dispatch(job))
    if sent:
        logger.warning("Re-dispatched %d stale jobs", sent)
    return sent


def prune(older_than: timedelta) -> int:
    """Delete finished jobs older than ``older_than``."""
    cutoff = timezone.now() - older_than
    deleted, _ = Job.objects.filter(
        Q(state=Job.State.COMPLETED, completed_at__lt=cutoff)
        | Q(state=Job.State.DISCARDED, discarded_at__lt=cutoff)
        | Q(state=Job.State.CANCELLED, cancelled_at__lt=cutoff)
    ).delete()
    if deleted:
        logger.info("Pruned %d finished jobs", deleted)
    return deleted


# ---------------------------------------------------------------------------
# Aggregate reads (observability)
# ---------------------------------------------------------------------------

def state_counts(states=Job.ACTIVE_STATES) -> Dict[str, int]:
    rows = (
        Job.objects.filter(state__in=states)
        .values('state')
        .annotate(count=Count('id'))
    )
    counts = {state: 0 for state in states}
    for row in rows:
        counts[row['state']] = row['count']
    return counts


def queue_depths() -> Dict[str, Dict[str, int]]:
    """Outstanding job counts per queue and state."""
    rows = (
        Job.objects.filter(state__in=Job.ACTIVE_STATES)
        .values('queue', 'state')
        .annotate(count=Count('id'))
        .order_by('queue', 'state')
    )
    depths: Dict[str, Dict[str, int]] = {}
    for row in rows:
        per_queue = depths.setdefault(row['queue'], {state: 0 for state in Job.ACTIVE_STATES})
        per_queue[row['state']] = row['count']
    return depths


def last_completed_at() -> Optional[datetime]:
    return Job.objects.filter(state=Job.State.COMPLETED).aggregate(last=Max('completed_at'))['last']
