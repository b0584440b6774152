"""Fire-and-forget dispatch of photo jobs with bounded concurrency."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

from gallery_studio.config import Settings
from gallery_studio.errors import QueueFullError
from gallery_studio.jobs import PhotoJob, run_photo_job
from gallery_studio.pipeline import DerivativePipeline
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "dispatch"})

JobRunner = Callable[..., Any]


class Dispatcher(Protocol):
    def submit(self, job: PhotoJob) -> None: ...

    def shutdown(self, wait: bool = True) -> None: ...


class InlineDispatcher:
    """Runs each job synchronously in the caller's thread (CLI and tests)."""

    def __init__(self, settings: Settings, runner: JobRunner = run_photo_job) -> None:
        self._settings = settings
        self._runner = runner
        self._pipeline = DerivativePipeline(settings=settings)

    def submit(self, job: PhotoJob) -> None:
        self._runner(job, self._settings, self._pipeline)

    def shutdown(self, wait: bool = True) -> None:
        return None


class ThreadDispatcher:
    """In-process worker pool.

    At most ``max_workers`` photos decode concurrently and at most
    ``max_pending`` jobs are queued or running. ``submit`` blocks for up to
    ``submit_timeout`` seconds for a free slot, then raises
    :class:`QueueFullError`.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        max_workers: int | None = None,
        max_pending: int | None = None,
        submit_timeout: float | None = None,
        runner: JobRunner = run_photo_job,
    ) -> None:
        queues = settings.queues
        self._settings = settings
        self._runner = runner
        self._pipeline = DerivativePipeline(settings=settings)
        self._submit_timeout = queues.submit_timeout if submit_timeout is None else submit_timeout
        workers = max(1, max_workers or queues.max_workers)
        pending = max(workers, max_pending or queues.max_pending)
        self._slots = threading.BoundedSemaphore(pending)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="photo-worker")
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def submit(self, job: PhotoJob) -> None:
        if not self._slots.acquire(timeout=self._submit_timeout):
            LOGGER.error("dispatch_queue_full", extra={"photo_id": job.photo_id})
            raise QueueFullError(f"processing queue is full; photo {job.photo_id} was not scheduled")

        with self._lock:
            self._in_flight += 1
        try:
            future = self._executor.submit(self._run, job)
        except RuntimeError:
            self._release()
            raise
        future.add_done_callback(self._on_done)
        LOGGER.debug("dispatch_submitted", extra={"photo_id": job.photo_id})

    def _run(self, job: PhotoJob) -> None:
        try:
            self._runner(job, self._settings, self._pipeline)
        except Exception as exc:
            LOGGER.error("dispatch_job_error", extra={"photo_id": job.photo_id, "error": str(exc)}, exc_info=True)

    def _on_done(self, _future: Future) -> None:
        self._release()

    def _release(self) -> None:
        with self._lock:
            self._in_flight -= 1
        self._slots.release()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class CeleryDispatcher:
    """Hands jobs to the Celery ``process_photo`` task on the configured queue."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def submit(self, job: PhotoJob) -> None:
        from gallery_studio.task_queue import process_photo

        result = process_photo.apply_async(args=[job.to_payload()], queue=self._settings.queues.queue_name)
        LOGGER.info("dispatch_enqueued", extra={"photo_id": job.photo_id, "task_id": result.id})

    def shutdown(self, wait: bool = True) -> None:
        return None


def build_dispatcher(settings: Settings) -> Dispatcher:
    backend = settings.queues.backend
    if backend == "celery":
        return CeleryDispatcher(settings)
    if backend == "inline":
        return InlineDispatcher(settings)
    return ThreadDispatcher(settings)


__all__ = [
    "CeleryDispatcher",
    "Dispatcher",
    "InlineDispatcher",
    "ThreadDispatcher",
    "build_dispatcher",
]
