"""Celery wiring for running photo jobs in separate worker processes.

Start a worker with::

    celery -A gallery_studio.task_queue worker -Q photo_processing
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from celery import Celery

from gallery_studio.config import Settings, load_settings
from gallery_studio.jobs import PhotoJob, run_photo_job
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "task_queue"})


@lru_cache(maxsize=1)
def _load_settings() -> Settings:
    return load_settings()


def _init_celery() -> Celery:
    settings = _load_settings()
    app = Celery("gallery_studio")
    app.conf.update(
        broker_url=settings.queues.broker_url,
        result_backend=settings.queues.result_backend,
        worker_concurrency=settings.queues.max_workers,
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        task_default_queue=settings.queues.queue_name,
        task_routes={
            "gallery_studio.task_queue.process_photo": {"queue": settings.queues.queue_name},
        },
        task_time_limit=int(settings.processing.timeout_seconds) + 60 if settings.processing.timeout_seconds > 0 else None,
    )
    return app


celery_app = _init_celery()


@celery_app.task(name="gallery_studio.task_queue.process_photo", acks_late=True)
def process_photo(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Process one uploaded photo; returns the aggregated result or ``None`` on failure."""

    job = PhotoJob.from_payload(payload)
    LOGGER.info("task_process_photo", extra={"photo_id": job.photo_id, "gallery_id": job.gallery_id})
    processed = run_photo_job(job, _load_settings())
    return processed.as_dict() if processed is not None else None


__all__ = ["celery_app", "process_photo"]
