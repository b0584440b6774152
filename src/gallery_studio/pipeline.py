"""Derivative pipeline: one uploaded source in, four persisted tiers out."""

from __future__ import annotations

import time
from uuid import uuid4
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from gallery_studio.config import Settings, load_settings
from gallery_studio.errors import PipelineTimeoutError
from gallery_studio.formats import mime_type_for, needs_conversion, output_filename, output_format
from gallery_studio.sources import load_source
from gallery_studio.storage import (
    ensure_gallery_directories,
    publish_staged,
    remove_file,
    staging_path,
    tier_path,
)
from gallery_studio.variants import VariantGenerator, tier_specs
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "pipeline"})

StageListener = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True)
class ImageSizes:
    """Absolute paths of the four tiers of one photo."""

    thumbnail: Path
    preview: Path
    web: Path
    original: Path

    def as_dict(self) -> dict[str, str]:
        return {
            "thumbnail": str(self.thumbnail),
            "preview": str(self.preview),
            "web": str(self.web),
            "original": str(self.original),
        }


@dataclass(frozen=True)
class ProcessedImage:
    """Aggregated result persisted onto the photo row.

    ``width``/``height``/``file_size``/``mime_type`` describe the original tier.
    ``filename`` is the stored name, which differs from the upload name only when
    the source was converted.
    """

    sizes: ImageSizes
    width: int
    height: int
    mime_type: str
    file_size: int
    filename: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "sizes": self.sizes.as_dict(),
            "width": self.width,
            "height": self.height,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "filename": self.filename,
        }


class DerivativePipeline:
    """Generates thumbnail, preview, web, and original tiers for uploaded photos.

    The pipeline never touches processing status; callers own the photo row.
    Tiers are written to per-run staging files and published together once all
    four exist, so a failed run never touches files already on disk.
    """

    def __init__(self, settings: Settings | None = None, stage_listener: StageListener | None = None) -> None:
        self._settings = settings or load_settings()
        self._storage_root = self._settings.storage.root_path
        self._generator = VariantGenerator(
            self._storage_root,
            self._settings.imaging,
            file_mode=self._settings.storage.file_mode,
        )
        self._stage_listener = stage_listener

    @property
    def storage_root(self) -> Path:
        return self._storage_root

    def process(
        self,
        gallery_id: str,
        source_path: str | Path,
        filename: str,
        watermark_path: str | Path | None = None,
        *,
        deadline: float | None = None,
    ) -> ProcessedImage:
        """Run every stage for one upload.

        Args:
            gallery_id: Gallery whose storage directory receives the tiers.
            source_path: Temporary upload file; left in place for the caller to remove.
            filename: Upload filename; its extension is rewritten on conversion.
            watermark_path: Absolute logo path, forwarded to the watermark-eligible tiers.
            deadline: Optional ``time.monotonic()`` value after which the run aborts
                at the next stage boundary with :class:`PipelineTimeoutError`.
        """

        source_path = Path(source_path)
        started = time.monotonic()
        token = uuid4().hex
        # staging path -> final tier path
        staged: dict[Path, Path] = {}

        try:
            self._check_deadline(deadline, "directories", gallery_id, filename)
            ensure_gallery_directories(self._storage_root, gallery_id, self._settings.storage.dir_mode)
            self._emit("directories", gallery_id=gallery_id)

            self._check_deadline(deadline, "decode", gallery_id, filename)
            source = load_source(source_path)
            convert = needs_conversion(source.format)
            fmt = output_format(source.format)
            stored_name = output_filename(filename, convert)
            self._emit(
                "decode",
                gallery_id=gallery_id,
                source_format=source.format,
                output_format=fmt,
                converted=convert,
                width=source.width,
                height=source.height,
                stored_filename=stored_name,
            )

            paths: dict[str, Path] = {}
            for spec in tier_specs(self._settings.imaging):
                self._check_deadline(deadline, spec.name, gallery_id, filename)
                final = tier_path(self._storage_root, gallery_id, spec.name, stored_name)
                staging = staging_path(self._storage_root, gallery_id, spec.name, stored_name, token)
                # Track before writing so a half-written file is also discarded.
                staged[staging] = final
                self._generator.generate(
                    spec,
                    gallery_id=gallery_id,
                    source=source,
                    source_path=source_path,
                    filename=stored_name,
                    fmt=fmt,
                    convert=convert,
                    watermark_path=watermark_path if spec.watermark else None,
                    output_path=staging,
                )
                paths[spec.name] = final.resolve()
                self._emit(spec.name, gallery_id=gallery_id, path=str(paths[spec.name]))

            publish_staged(staged)
            file_size = paths["original"].stat().st_size
        except Exception as exc:
            self._discard(list(staged))
            LOGGER.error(
                "pipeline_failed",
                extra={
                    "gallery_id": gallery_id,
                    "upload_filename": filename,
                    "staged_count": len(staged),
                    "error": str(exc),
                },
            )
            raise

        result = ProcessedImage(
            sizes=ImageSizes(
                thumbnail=paths["thumbnail"],
                preview=paths["preview"],
                web=paths["web"],
                original=paths["original"],
            ),
            width=source.width,
            height=source.height,
            mime_type=mime_type_for(fmt),
            file_size=file_size,
            filename=stored_name,
        )
        LOGGER.info(
            "pipeline_complete",
            extra={
                "gallery_id": gallery_id,
                "stored_filename": stored_name,
                "width": result.width,
                "height": result.height,
                "file_size": file_size,
                "watermarked": bool(watermark_path),
                "elapsed_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return result

    def _emit(self, stage: str, **fields: Any) -> None:
        LOGGER.debug("pipeline_stage_complete", extra={"stage": stage, **fields})
        if self._stage_listener is not None:
            self._stage_listener(stage, fields)

    @staticmethod
    def _check_deadline(deadline: float | None, stage: str, gallery_id: str, filename: str) -> None:
        if deadline is None or time.monotonic() < deadline:
            return
        raise PipelineTimeoutError(
            f"processing deadline passed before stage {stage!r} for {filename!r} in gallery {gallery_id!r}"
        )

    @staticmethod
    def _discard(paths: list[Path]) -> None:
        for path in paths:
            if remove_file(path):
                LOGGER.info("pipeline_partial_output_removed", extra={"path": str(path)})


def process_image(
    gallery_id: str,
    source_path: str | Path,
    filename: str,
    watermark_path: str | Path | None = None,
    settings: Settings | None = None,
) -> ProcessedImage:
    """Convenience wrapper running a fresh :class:`DerivativePipeline`."""

    return DerivativePipeline(settings=settings).process(gallery_id, source_path, filename, watermark_path)


__all__ = ["DerivativePipeline", "ImageSizes", "ProcessedImage", "StageListener", "process_image"]
