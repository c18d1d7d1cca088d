"""
Celery application for the job workers.

Start a worker for one queue with:
    celery -A config worker -Q research -c 3 -P threads
or all configured queues with `python manage.py run_jobs`.
"""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("directory")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
