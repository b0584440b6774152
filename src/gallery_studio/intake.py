"""Accept an upload batch: stage files, insert placeholder rows, dispatch jobs."""

from __future__ import annotations

import shutil
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Protocol

from sqlalchemy import delete
from sqlalchemy.orm import Session

from gallery_studio.config import Settings
from gallery_studio.db import Photo
from gallery_studio.dispatch import Dispatcher
from gallery_studio.errors import GalleryNotFoundError
from gallery_studio.jobs import PhotoJob
from gallery_studio.repository import create_placeholder_photo, get_gallery, resolve_watermark_path
from gallery_studio.storage import remove_file
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "intake"})


class Upload(Protocol):
    """Anything shaped like a werkzeug ``FileStorage``."""

    filename: str | None
    stream: BinaryIO
    mimetype: str | None


@dataclass
class UploadedFile:
    filename: str
    stream: BinaryIO
    mimetype: str | None = None


def _safe_name(filename: str | None) -> str:
    name = Path(filename or "").name.strip()
    if not name or name in {".", ".."}:
        raise ValueError(f"Invalid upload filename: {filename!r}")
    return name


def _stage_upload(upload: Upload, temp_dir: Path, filename: str) -> Path:
    temp_dir.mkdir(parents=True, exist_ok=True)
    target = temp_dir / f"{time.time_ns()}-{filename}"
    try:
        with target.open("wb") as fp:
            shutil.copyfileobj(upload.stream, fp)
    except Exception:
        remove_file(target)
        raise
    return target


def _discard_placeholder(session: Session, photo_id: str) -> None:
    session.rollback()
    session.execute(delete(Photo).where(Photo.id == photo_id))
    session.commit()


def accept_uploads(
    session: Session,
    settings: Settings,
    gallery_id: str,
    uploads: Iterable[Upload],
    dispatcher: Dispatcher,
) -> list[dict[str, Any]]:
    """Register each upload as a ``pending`` photo and hand it to ``dispatcher``.

    Returns one ``{"id", "filename", "status"}`` entry per upload in input
    order; processing completes asynchronously. When a placeholder cannot be
    stored or the dispatcher refuses a job (:class:`QueueFullError`, broker
    errors), that photo's row and staged file are removed and the error
    propagates; photos dispatched before it keep processing.
    """

    gallery = get_gallery(session, gallery_id)
    if gallery is None:
        raise GalleryNotFoundError(f"Gallery not found: {gallery_id!r}")

    storage_root = settings.storage.root_path
    watermark = resolve_watermark_path(session, gallery, storage_root)
    watermark_path = str(watermark) if watermark is not None else None

    accepted: list[dict[str, Any]] = []
    for index, upload in enumerate(uploads):
        filename = _safe_name(upload.filename)
        temp_path = _stage_upload(upload, settings.storage.temp_path, filename)
        try:
            photo = create_placeholder_photo(
                session,
                gallery_id=gallery_id,
                filename=filename,
                mime_type=upload.mimetype,
                upload_order=index,
            )
        except Exception:
            session.rollback()
            remove_file(temp_path)
            raise

        job = PhotoJob(
            photo_id=photo.id,
            gallery_id=gallery_id,
            temp_path=str(temp_path),
            filename=filename,
            watermark_path=watermark_path,
        )
        try:
            dispatcher.submit(job)
        except Exception as exc:
            LOGGER.error(
                "upload_dispatch_failed",
                extra={"photo_id": photo.id, "gallery_id": gallery_id, "error": str(exc)},
            )
            _discard_placeholder(session, photo.id)
            remove_file(temp_path)
            raise

        accepted.append({"id": photo.id, "filename": filename, "status": photo.processing_status})

    LOGGER.info(
        "uploads_accepted",
        extra={"gallery_id": gallery_id, "count": len(accepted), "watermark": watermark_path is not None},
    )
    return accepted


__all__ = ["Upload", "UploadedFile", "accept_uploads"]
