"""
Run the job queue workers.

Usage:
    python manage.py run_jobs                         # one Celery worker per queue in settings.JOB_QUEUES
    python manage.py run_jobs --queues research=3,ai_enrich=1
    python manage.py run_jobs --once                  # drain due jobs synchronously, then exit
"""

import logging
import signal
import subprocess
import sys

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from jobs.runner import drain

logger = logging.getLogger(__name__)


def parse_queues(value: str) -> dict:
    """Parse 'research=3,default' into {'research': 3, 'default': <configured size>}."""
    queues = {}
    for part in value.split(','):
        part = part.strip()
        if not part:
            continue
        name, _, size = part.partition('=')
        name = name.strip()
        if size:
            try:
                queues[name] = int(size)
            except ValueError:
                raise CommandError(f"Invalid concurrency for queue {name!r}: {size!r}")
        else:
            queues[name] = settings.JOB_QUEUES.get(name, 1)
    return queues


def worker_command(queue: str, concurrency: int) -> list:
    """Celery worker command line consuming a single queue."""
    return [
        sys.executable, '-m', 'celery', '-A', 'config', 'worker',
        '-Q', queue,
        '-c', str(concurrency),
        '-P', 'threads',
        '-n', f'{queue}@%h',
        '--loglevel', 'INFO',
    ]


class Command(BaseCommand):
    help = 'Run job queue workers (one Celery worker per queue)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--queues', type=str, default='',
            help='Comma-separated queue[=concurrency] list (default: settings.JOB_QUEUES)',
        )
        parser.add_argument(
            '--once', action='store_true',
            help='Execute all due jobs synchronously and exit',
        )

    def handle(self, *args, **options):
        queues = parse_queues(options['queues']) if options['queues'] else dict(settings.JOB_QUEUES)
        queues = {name: size for name, size in queues.items() if size > 0}
        if not queues:
            raise CommandError("No queues configured.")

        if options['once']:
            executed = drain(queues.keys())
            self.stdout.write(self.style.SUCCESS(f"Executed {executed} job(s)"))
            return

        workers = [subprocess.Popen(worker_command(name, size)) for name, size in queues.items()]

        def _shutdown(signum, frame):
            logger.info("Received signal %s, stopping %d workers", signum, len(workers))
            for proc in workers:
                proc.terminate()

        signal.signal(signal.SIGTERM, _shutdown)
        signal.signal(signal.SIGINT, _shutdown)

        self.stdout.write(self.style.SUCCESS(
            "Running queues: " + ", ".join(f"{q}={n}" for q, n in queues.items())
        ))
        codes = [proc.wait() for proc in workers]
        if any(codes):
            raise CommandError(f"Worker exit codes: {codes}")
