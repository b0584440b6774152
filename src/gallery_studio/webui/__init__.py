"""Flask JSON API for uploading photos and serving their tiers."""

from __future__ import annotations

from typing import Any

from flask import Flask, abort, jsonify, request, send_file

from gallery_studio.config import Settings, load_settings
from gallery_studio.db import Photo, open_session
from gallery_studio.dispatch import Dispatcher, build_dispatcher
from gallery_studio.errors import GalleryNotFoundError, QueueFullError
from gallery_studio.intake import accept_uploads
from gallery_studio.repository import (
    delete_photo,
    get_gallery,
    get_photo,
    list_completed_photos,
    list_gallery_photos,
)
from gallery_studio.status import ProcessingStatus
from gallery_studio.storage import TIERS, tier_path
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "webui"})


def _photo_payload(photo: Photo) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": photo.id,
        "gallery_id": photo.gallery_id,
        "filename": photo.filename,
        "file_path": photo.file_path,
        "width": photo.width,
        "height": photo.height,
        "file_size": photo.file_size,
        "mime_type": photo.mime_type,
        "processing_status": photo.processing_status,
        "upload_order": photo.upload_order,
        "error_message": photo.error_message,
        "created_at": photo.created_at,
        "updated_at": photo.updated_at,
    }
    if photo.processing_status == ProcessingStatus.COMPLETED.value:
        payload["urls"] = {tier: f"/api/photos/{photo.id}/{tier}" for tier in TIERS}
    return payload


def create_app(settings: Settings | None = None, dispatcher: Dispatcher | None = None) -> Flask:
    """Build the API application; the dispatcher defaults to the configured backend."""

    settings = settings or load_settings()
    dispatcher = dispatcher or build_dispatcher(settings)
    db_target = settings.database.url
    storage_root = settings.storage.root_path

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.web.max_upload_bytes
    app.extensions["gallery_studio"] = {"settings": settings, "dispatcher": dispatcher}

    @app.get("/health")
    def health() -> Any:
        return jsonify({"status": "ok"})

    @app.post("/api/galleries/<gallery_id>/photos")
    def upload_photos(gallery_id: str) -> Any:
        files = [item for item in request.files.getlist("files") if item.filename]
        if not files:
            abort(400, description="No files uploaded; send multipart field 'files'.")

        with open_session(db_target) as session:
            try:
                accepted = accept_uploads(session, settings, gallery_id, files, dispatcher)
            except GalleryNotFoundError:
                abort(404, description="Gallery not found.")
            except QueueFullError as exc:
                LOGGER.warning("upload_rejected_queue_full", extra={"gallery_id": gallery_id})
                abort(503, description=str(exc))
            except ValueError as exc:
                abort(400, description=str(exc))

        return jsonify({"photos": accepted, "message": "Photos are being processed."}), 202

    @app.get("/api/galleries/<gallery_id>/photos")
    def gallery_photos(gallery_id: str) -> Any:
        with open_session(db_target) as session:
            if get_gallery(session, gallery_id) is None:
                abort(404, description="Gallery not found.")
            photos = [_photo_payload(photo) for photo in list_completed_photos(session, gallery_id)]
        return jsonify({"photos": photos})

    @app.get("/api/galleries/<gallery_id>/photos/all")
    def gallery_photos_all(gallery_id: str) -> Any:
        with open_session(db_target) as session:
            if get_gallery(session, gallery_id) is None:
                abort(404, description="Gallery not found.")
            photos = [_photo_payload(photo) for photo in list_gallery_photos(session, gallery_id)]
        return jsonify({"photos": photos})

    @app.get("/api/photos/<photo_id>")
    def photo_detail(photo_id: str) -> Any:
        with open_session(db_target) as session:
            photo = get_photo(session, photo_id)
            if photo is None:
                abort(404, description="Photo not found.")
            return jsonify(_photo_payload(photo))

    @app.get("/api/photos/<photo_id>/<tier>")
    def photo_tier(photo_id: str, tier: str) -> Any:
        if tier not in TIERS:
            abort(404, description=f"Unknown size {tier!r}.")
        with open_session(db_target) as session:
            photo = get_photo(session, photo_id)
            if photo is None or photo.processing_status != ProcessingStatus.COMPLETED.value:
                abort(404, description="Photo not found or not processed yet.")
            gallery_id, filename, mime_type = photo.gallery_id, photo.filename, photo.mime_type

        path = tier_path(storage_root, gallery_id, tier, filename)
        if not path.is_file():
            LOGGER.error("photo_tier_missing", extra={"photo_id": photo_id, "tier": tier, "path": str(path)})
            abort(404, description="Image content not found on disk.")
        return send_file(path, mimetype=mime_type)

    @app.delete("/api/galleries/<gallery_id>/photos/<photo_id>")
    def remove_photo(gallery_id: str, photo_id: str) -> Any:
        with open_session(db_target) as session:
            photo = get_photo(session, photo_id)
            if photo is None or photo.gallery_id != gallery_id:
                abort(404, description="Photo not found.")
            delete_photo(session, photo_id, storage_root)
        LOGGER.info("photo_deleted", extra={"photo_id": photo_id, "gallery_id": gallery_id})
        return jsonify({"deleted": photo_id})

    return app


__all__ = ["create_app"]
