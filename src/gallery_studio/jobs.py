"""Per-photo processing job: status transitions around one pipeline run."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from gallery_studio.config import Settings
from gallery_studio.db import open_session
from gallery_studio.pipeline import DerivativePipeline, ProcessedImage
from gallery_studio.status import mark_completed, mark_failed, mark_processing
from gallery_studio.storage import delete_photo_files, remove_file
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "jobs"})


@dataclass(frozen=True)
class PhotoJob:
    """Everything a worker needs to process one uploaded file."""

    photo_id: str
    gallery_id: str
    temp_path: str
    filename: str
    watermark_path: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PhotoJob":
        return cls(
            photo_id=str(payload["photo_id"]),
            gallery_id=str(payload["gallery_id"]),
            temp_path=str(payload["temp_path"]),
            filename=str(payload["filename"]),
            watermark_path=payload.get("watermark_path"),
        )


def run_photo_job(
    job: PhotoJob,
    settings: Settings,
    pipeline: DerivativePipeline | None = None,
) -> ProcessedImage | None:
    """Drive one photo from ``pending`` to ``completed`` or ``failed``.

    Pipeline errors are logged and recorded on the row rather than raised, so a
    failing photo never affects its siblings. The temporary upload is removed
    whatever the outcome.
    """

    pipeline = pipeline or DerivativePipeline(settings=settings)
    db_target = settings.database.url
    temp_path = Path(job.temp_path)
    log_extra = {"photo_id": job.photo_id, "gallery_id": job.gallery_id, "upload_filename": job.filename}

    try:
        with open_session(db_target) as session:
            if not mark_processing(session, job.photo_id):
                LOGGER.warning("photo_job_skipped", extra=log_extra)
                return None

        deadline = None
        if settings.processing.timeout_seconds > 0:
            deadline = time.monotonic() + settings.processing.timeout_seconds

        try:
            processed = pipeline.process(
                job.gallery_id,
                temp_path,
                job.filename,
                job.watermark_path,
                deadline=deadline,
            )
        except Exception as exc:
            LOGGER.error("photo_job_failed", extra={**log_extra, "error": str(exc)}, exc_info=True)
            with open_session(db_target) as session:
                mark_failed(session, job.photo_id, exc)
            return None

        with open_session(db_target) as session:
            if not mark_completed(session, job.photo_id, processed, pipeline.storage_root):
                # Deleted while processing: do not leave its tiers behind.
                LOGGER.warning("photo_job_row_gone", extra=log_extra)
                delete_photo_files(pipeline.storage_root, job.gallery_id, processed.filename)
                return None

        LOGGER.info("photo_job_completed", extra={**log_extra, "stored_filename": processed.filename})
        return processed
    finally:
        remove_file(temp_path)


__all__ = ["PhotoJob", "run_photo_job"]
