"""
Worker base class and registry.

A worker is a class with a ``perform(job)`` method, registered under its
class name. Jobs store that name, so renaming a worker class orphans its
queued jobs (they are discarded as unknown).

    @register
    class TranslateWorker(Worker):
        queue = 'translations'
        max_attempts = 3
        unique = Unique(period=300, fields=('args', 'queue'))

        def perform(self, job):
            ...

    TranslateWorker.enqueue({'type': 'business', 'id': 7, 'target_locale': 'es'})

``perform`` returning normally completes the job. Raising ``DiscardJob``
fails it permanently; any other exception is retried with backoff until
``max_attempts`` is reached.
"""

from datetime import datetime
from typing import Dict, Optional, Type

from jobs import queue as job_queue
from jobs.models import Job
from jobs.queue import InsertResult, Unique


class DiscardJob(Exception):
    """Raised by a worker to fail a job permanently, without retries."""


class Worker:
    name: str = ''
    queue: str = 'default'
    max_attempts: int = 20
    unique: Optional[Unique] = None

    def perform(self, job: Job) -> None:
        raise NotImplementedError

    def backoff(self, attempt: int) -> int:
        return job_queue.backoff(attempt)

    @classmethod
    def enqueue(
        cls,
        args: Optional[dict] = None,
        *,
        schedule_in: Optional[float] = None,
        scheduled_at: Optional[datetime] = None,
    ) -> InsertResult:
        return job_queue.insert(
            cls.name or cls.__name__,
            args or {},
            queue=cls.queue,
            max_attempts=cls.max_attempts,
            schedule_in=schedule_in,
            scheduled_at=scheduled_at,
            unique=cls.unique,
        )


_registry: Dict[str, Type[Worker]] = {}


def register(cls: Type[Worker]) -> Type[Worker]:
    """Class decorator adding a worker to the registry."""
    if not cls.name:
        cls.name = cls.__name__
    existing = _registry.get(cls.name)
    if existing is not None and existing is not cls:
        raise ValueError(f"Worker name {cls.name!r} already registered by {existing.__module__}")
    _registry[cls.name] = cls
    return cls


def get_worker(name: str) -> Optional[Type[Worker]]:
    return _registry.get(name)


def registered_workers() -> Dict[str, Type[Worker]]:
    return dict(_registry)
