"""Photo job lifecycle: status transitions around one pipeline run."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from gallery_studio import status, variants
from gallery_studio.config import Settings
from gallery_studio.db import Photo, open_session
from gallery_studio.jobs import PhotoJob, run_photo_job
from gallery_studio.pipeline import DerivativePipeline
from gallery_studio.repository import create_gallery, create_placeholder_photo
from gallery_studio.storage import TIERS


def _stage_job(settings: Settings, source: Path, filename: str) -> PhotoJob:
    temp_dir = settings.storage.temp_path
    temp_dir.mkdir(parents=True, exist_ok=True)
    temp_path = temp_dir / f"1-{filename}"
    shutil.copyfile(source, temp_path)

    with open_session(settings.database.url) as session:
        gallery = create_gallery(session, title="Portraits")
        photo = create_placeholder_photo(
            session, gallery_id=gallery.id, filename=filename, mime_type="image/jpeg", upload_order=0
        )
    return PhotoJob(photo_id=photo.id, gallery_id=gallery.id, temp_path=str(temp_path), filename=filename)


def _record_transitions(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    seen: list[str] = []
    real_transition = status.transition

    def recording(session, photo_id, target, **values):
        seen.append(status.ProcessingStatus(target).value)
        return real_transition(session, photo_id, target, **values)

    monkeypatch.setattr(status, "transition", recording)
    return seen


def test_payload_round_trip() -> None:
    """A job survives serialisation to its queue payload."""

    job = PhotoJob(photo_id="p", gallery_id="g", temp_path="/tmp/x.jpg", filename="x.jpg", watermark_path=None)

    assert PhotoJob.from_payload(job.to_payload()) == job


def test_successful_job_completes_photo(settings: Settings, make_jpeg, monkeypatch: pytest.MonkeyPatch) -> None:
    """A successful run marks the photo completed with tier metadata."""

    job = _stage_job(settings, make_jpeg("a.jpg", (1600, 1200)), "a.jpg")
    seen = _record_transitions(monkeypatch)

    processed = run_photo_job(job, settings)

    assert processed is not None
    assert seen == ["processing", "completed"]
    assert not Path(job.temp_path).exists()
    with open_session(settings.database.url) as session:
        photo = session.get(Photo, job.photo_id)
        assert photo.processing_status == "completed"
        assert (photo.width, photo.height) == (1600, 1200)
        assert photo.mime_type == "image/jpeg"
        assert photo.file_path == f"{job.gallery_id}/original/a.jpg"


def test_failed_job_records_error(settings: Settings, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A decode failure marks the photo failed and stores the error."""

    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"not an image")
    job = _stage_job(settings, broken, "broken.jpg")
    seen = _record_transitions(monkeypatch)

    assert run_photo_job(job, settings) is None

    assert seen == ["processing", "failed"]
    assert not Path(job.temp_path).exists()
    with open_session(settings.database.url) as session:
        photo = session.get(Photo, job.photo_id)
        assert photo.processing_status == "failed"
        assert "broken.jpg" in photo.error_message


def test_job_for_finished_photo_is_skipped(settings: Settings, make_jpeg) -> None:
    """Jobs for photos no longer pending are ignored."""

    job = _stage_job(settings, make_jpeg("a.jpg", (640, 480)), "a.jpg")
    with open_session(settings.database.url) as session:
        status.mark_processing(session, job.photo_id)
        status.mark_failed(session, job.photo_id, "earlier failure")

    assert run_photo_job(job, settings) is None
    assert not Path(job.temp_path).exists()
    assert not (settings.storage.root_path / job.gallery_id).exists()


def test_photo_deleted_mid_run_leaves_no_files(settings: Settings, make_jpeg) -> None:
    """If the row disappears during processing, written tiers are removed."""

    job = _stage_job(settings, make_jpeg("a.jpg", (640, 480)), "a.jpg")

    def delete_row(stage: str, fields: dict) -> None:
        if stage == "decode":
            with open_session(settings.database.url) as session:
                session.delete(session.get(Photo, job.photo_id))
                session.commit()

    pipeline = DerivativePipeline(settings=settings, stage_listener=delete_row)

    assert run_photo_job(job, settings, pipeline) is None
    for tier in TIERS:
        assert not (settings.storage.root_path / job.gallery_id / tier / "a.jpg").exists()


def test_tier_write_failure_marks_failed_and_cleans_up(
    settings: Settings, make_jpeg, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failing tier write fails the photo and leaves no partial tiers."""

    job = _stage_job(settings, make_jpeg("a.jpg", (1600, 1200)), "a.jpg")
    real_save = variants.save_image

    def failing_save(image, output_path: Path, fmt: str, quality: int) -> None:
        if output_path.parent.name == "web":
            raise OSError("No space left on device")
        real_save(image, output_path, fmt, quality)

    monkeypatch.setattr(variants, "save_image", failing_save)
    seen = _record_transitions(monkeypatch)

    assert run_photo_job(job, settings) is None

    assert seen == ["processing", "failed"]
    for tier in TIERS:
        assert not (settings.storage.root_path / job.gallery_id / tier / "a.jpg").exists()
    with open_session(settings.database.url) as session:
        assert session.get(Photo, job.photo_id).error_message == "No space left on device"
