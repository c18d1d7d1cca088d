from django.db import models
from django.db.models import Q
from django.utils import timezone


class Job(models.Model):
    """
    One unit of queued work: a worker name plus its JSON arguments.

    Jobs are executed at least once. Workers must make their effects
    idempotent (upserts, forward-only status changes).
    """

    class State(models.TextChoices):
        AVAILABLE = 'available', 'Available'
        SCHEDULED = 'scheduled', 'Scheduled'
        EXECUTING = 'executing', 'Executing'
        RETRYABLE = 'retryable', 'Retryable'
        COMPLETED = 'completed', 'Completed'
        DISCARDED = 'discarded', 'Discarded'
        CANCELLED = 'cancelled', 'Cancelled'

    # States in which a job still counts as outstanding work
    ACTIVE_STATES = (
        State.AVAILABLE,
        State.SCHEDULED,
        State.EXECUTING,
        State.RETRYABLE,
    )
    FINISHED_STATES = (
        State.COMPLETED,
        State.DISCARDED,
        State.CANCELLED,
    )

    worker = models.CharField(max_length=255)
    queue = models.CharField(max_length=64, default='default')
    args = models.JSONField(default=dict, blank=True)
    state = models.CharField(
        max_length=20,
        choices=State.choices,
        default=State.AVAILABLE,
    )
    attempt = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=20)
    errors = models.JSONField(default=list, blank=True)
    unique_key = models.CharField(max_length=64, null=True, blank=True)

    inserted_at = models.DateTimeField(default=timezone.now)
    scheduled_at = models.DateTimeField(default=timezone.now)
    attempted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    discarded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'jobs'
        ordering = ['scheduled_at', 'id']
        indexes = [
            models.Index(fields=['queue', 'state', 'scheduled_at'], name='jobs_fetch_idx'),
            models.Index(fields=['unique_key', 'inserted_at'], name='jobs_unique_idx'),
            models.Index(fields=['worker', 'state'], name='jobs_worker_state_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['unique_key'],
                condition=Q(state__in=['available', 'scheduled', 'executing', 'retryable']),
                name='jobs_unique_active_key',
            ),
        ]

    def __str__(self):
        return f"{self.worker}#{self.pk} [{self.state}] {self.args}"

    @property
    def is_active(self) -> bool:
        return self.state in self.ACTIVE_STATES

    @property
    def last_error(self) -> str:
        if not self.errors:
            return ""
        return self.errors[-1].get('error', '')
