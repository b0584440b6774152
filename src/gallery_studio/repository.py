"""Repository helpers for galleries, admin accounts, and photo rows."""

from __future__ import annotations

import shutil
import time
from collections.abc import Sequence
from pathlib import Path

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from gallery_studio.db import AdminUser, Gallery, Photo
from gallery_studio.status import ProcessingStatus
from gallery_studio.storage import delete_gallery_directory, delete_photo_files
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "repository"})


def create_admin(session: Session, *, username: str, email: str) -> AdminUser:
    admin = AdminUser(username=username, email=email)
    session.add(admin)
    session.commit()
    LOGGER.info("admin_created", extra={"admin_id": admin.id, "username": username})
    return admin


def create_gallery(session: Session, *, title: str, owner_id: str | None = None) -> Gallery:
    gallery = Gallery(title=title, owner_id=owner_id)
    session.add(gallery)
    session.commit()
    LOGGER.info("gallery_created", extra={"gallery_id": gallery.id, "owner_id": owner_id})
    return gallery


def get_gallery(session: Session, gallery_id: str) -> Gallery | None:
    return session.get(Gallery, gallery_id)


def get_photo(session: Session, photo_id: str) -> Photo | None:
    return session.get(Photo, photo_id)


def create_placeholder_photo(
    session: Session,
    *,
    gallery_id: str,
    filename: str,
    mime_type: str | None,
    upload_order: int,
) -> Photo:
    """Insert a ``pending`` row with zeroed metadata ahead of processing."""

    now = time.time()
    photo = Photo(
        gallery_id=gallery_id,
        filename=filename,
        file_path="",
        width=0,
        height=0,
        file_size=0,
        mime_type=mime_type or "application/octet-stream",
        processing_status=ProcessingStatus.PENDING.value,
        upload_order=upload_order,
        created_at=now,
        updated_at=now,
    )
    session.add(photo)
    session.commit()
    return photo


def list_completed_photos(session: Session, gallery_id: str) -> Sequence[Photo]:
    """Client-visible photos in display order."""

    stmt = (
        select(Photo)
        .where(Photo.gallery_id == gallery_id, Photo.processing_status == ProcessingStatus.COMPLETED.value)
        .order_by(Photo.upload_order.asc(), Photo.created_at.asc())
    )
    return session.execute(stmt).scalars().all()


def list_gallery_photos(session: Session, gallery_id: str) -> Sequence[Photo]:
    """Every photo of a gallery regardless of status, for admin tooling."""

    stmt = (
        select(Photo)
        .where(Photo.gallery_id == gallery_id)
        .order_by(Photo.upload_order.asc(), Photo.created_at.asc())
    )
    return session.execute(stmt).scalars().all()


def resolve_watermark_path(session: Session, gallery: Gallery, storage_root: Path) -> Path | None:
    """Absolute logo path of the gallery owner, or ``None`` when none is configured."""

    if gallery.owner_id is None:
        return None
    owner = session.get(AdminUser, gallery.owner_id)
    if owner is None or not owner.watermark_logo_path:
        return None
    logo = Path(owner.watermark_logo_path)
    if not logo.is_absolute():
        logo = storage_root / logo
    return logo.resolve()


def set_watermark(
    session: Session,
    admin_id: str,
    logo_source: Path,
    storage_root: Path,
    watermark_dir_name: str = "watermarks",
) -> str:
    """Copy a logo under the storage root and point the admin account at it."""

    admin = session.get(AdminUser, admin_id)
    if admin is None:
        raise LookupError(f"Unknown admin user: {admin_id!r}")

    target_dir = storage_root / watermark_dir_name
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"watermark-{int(time.time() * 1000)}{logo_source.suffix.lower()}"
    shutil.copyfile(logo_source, target)

    relative = f"{watermark_dir_name}/{target.name}"
    admin.watermark_logo_path = relative
    session.add(admin)
    session.commit()
    LOGGER.info("admin_watermark_set", extra={"admin_id": admin_id, "path": relative})
    return relative


def delete_photo(session: Session, photo_id: str, storage_root: Path) -> bool:
    """Delete a photo row and its tier files; returns whether the row existed."""

    photo = session.get(Photo, photo_id)
    if photo is None:
        return False
    gallery_id, filename = photo.gallery_id, photo.filename
    session.execute(delete(Photo).where(Photo.id == photo_id))
    session.commit()
    delete_photo_files(storage_root, gallery_id, filename)
    return True


def delete_gallery(session: Session, gallery_id: str, storage_root: Path) -> bool:
    gallery = session.get(Gallery, gallery_id)
    if gallery is None:
        return False
    session.execute(delete(Photo).where(Photo.gallery_id == gallery_id))
    session.execute(delete(Gallery).where(Gallery.id == gallery_id))
    session.commit()
    delete_gallery_directory(storage_root, gallery_id)
    return True


def fail_stale_photos(session: Session, older_than_seconds: float) -> int:
    """Mark rows stuck in ``processing`` past the cutoff as ``failed``.

    Covers pipelines that died with their worker process.
    """

    cutoff = time.time() - older_than_seconds
    result = session.execute(
        update(Photo)
        .where(
            Photo.processing_status == ProcessingStatus.PROCESSING.value,
            Photo.updated_at < cutoff,
        )
        .values(
            processing_status=ProcessingStatus.FAILED.value,
            error_message="processing timed out",
            updated_at=time.time(),
        )
        .execution_options(synchronize_session=False)
    )
    session.commit()
    count = int(result.rowcount or 0)
    LOGGER.info("stale_photos_failed", extra={"count": count, "older_than_seconds": older_than_seconds})
    return count


__all__ = [
    "create_admin",
    "create_gallery",
    "create_placeholder_photo",
    "delete_gallery",
    "delete_photo",
    "fail_stale_photos",
    "get_gallery",
    "get_photo",
    "list_completed_photos",
    "list_gallery_photos",
    "resolve_watermark_path",
    "set_watermark",
]
