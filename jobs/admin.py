from django.contrib import admin, messages
from django.db import IntegrityError

from jobs import queue as job_queue
from jobs.models import Job


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ('id', 'worker', 'queue', 'state', 'attempt', 'max_attempts', 'scheduled_at', 'inserted_at')
    list_filter = ('state', 'queue', 'worker')
    search_fields = ('worker',)
    readonly_fields = ('unique_key', 'errors', 'attempted_at', 'completed_at', 'discarded_at', 'cancelled_at')
    actions = ['cancel_jobs', 'retry_jobs']

    @admin.action(description="Cancel selected jobs")
    def cancel_jobs(self, request, queryset):
        for job in queryset:
            job_queue.cancel(job)
        self.message_user(request, f"Cancelled {queryset.count()} job(s)")

    @admin.action(description="Retry selected finished jobs")
    def retry_jobs(self, request, queryset):
        retried = 0
        for job in queryset.filter(state__in=Job.FINISHED_STATES):
            try:
                job_queue.retry(job)
                retried += 1
            except IntegrityError:
                self.message_user(
                    request,
                    f"Job #{job.pk} not retried: an identical job is already queued",
                    level=messages.WARNING,
                )
        self.message_user(request, f"Retried {retried} job(s)")
