"""Per-tier resize, watermark, encode, and write."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final

from PIL import Image, ImageOps
from PIL.Image import Resampling

from gallery_studio.config import ImagingConfig
from gallery_studio.sources import SourceImage
from gallery_studio.storage import DEFAULT_FILE_MODE, set_mode, tier_path
from gallery_studio.watermark import apply_watermark
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "variants"})

ORIGINAL_QUALITY: Final[int] = 95

_PIL_SAVE_FORMATS: Final[dict[str, str]] = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "tiff": "TIFF",
    "bmp": "BMP",
    "avif": "AVIF",
}
_QUALITY_FORMATS: Final[frozenset[str]] = frozenset({"JPEG", "WEBP", "AVIF"})


class FitPolicy(str, Enum):
    """How a tier maps the source onto its bounding box."""

    COVER = "cover"
    INSIDE = "inside"
    NONE = "none"


@dataclass(frozen=True)
class TierSpec:
    """Resize and watermark rules of one output tier."""

    name: str
    fit: FitPolicy
    max_dimension: int
    watermark: bool


def tier_specs(imaging: ImagingConfig) -> tuple[TierSpec, ...]:
    """Tier rules in generation order; ``original`` is last so its size can be read."""

    return (
        TierSpec("thumbnail", FitPolicy.COVER, imaging.thumbnail_size, watermark=True),
        TierSpec("preview", FitPolicy.INSIDE, imaging.preview_size, watermark=True),
        TierSpec("web", FitPolicy.INSIDE, imaging.web_size, watermark=True),
        TierSpec("original", FitPolicy.NONE, 0, watermark=False),
    )


def resize_for_tier(image: Image.Image, spec: TierSpec) -> Image.Image:
    """Return a resized copy of ``image`` following the tier's fit policy."""

    side = max(1, int(spec.max_dimension))
    if spec.fit is FitPolicy.COVER:
        return ImageOps.fit(image, (side, side), method=Resampling.LANCZOS, centering=(0.5, 0.5))
    if spec.fit is FitPolicy.INSIDE:
        resized = image.copy()
        # thumbnail() only ever shrinks.
        resized.thumbnail((side, side), resample=Resampling.LANCZOS)
        return resized
    return image.copy()


def _flatten_for_jpeg(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def save_image(image: Image.Image, output_path: Path, fmt: str, quality: int) -> None:
    """Encode ``image`` as ``fmt`` into ``output_path``."""

    pil_format = _PIL_SAVE_FORMATS.get(fmt, fmt.upper())
    kwargs: dict[str, object] = {}
    if pil_format == "JPEG":
        image = _flatten_for_jpeg(image)
    if pil_format in _QUALITY_FORMATS:
        kwargs["quality"] = quality

    try:
        image.save(output_path, format=pil_format, **kwargs)
    except Exception as exc:
        LOGGER.error(
            "variant_save_error",
            extra={"path": str(output_path), "format": pil_format, "quality": quality, "error": str(exc)},
        )
        raise


class VariantGenerator:
    """Writes one tier of a photo under the gallery's storage directory."""

    def __init__(
        self,
        storage_root: Path,
        imaging: ImagingConfig,
        file_mode: int = DEFAULT_FILE_MODE,
    ) -> None:
        self._storage_root = storage_root
        self._imaging = imaging
        self._file_mode = file_mode

    def generate(
        self,
        spec: TierSpec,
        *,
        gallery_id: str,
        source: SourceImage,
        source_path: Path,
        filename: str,
        fmt: str,
        convert: bool,
        watermark_path: str | Path | None = None,
        output_path: Path | None = None,
    ) -> Path:
        """Produce ``spec``'s file and return its absolute path; errors propagate.

        ``output_path`` overrides the tier location, e.g. with a staging file.
        """

        output_path = output_path or tier_path(self._storage_root, gallery_id, spec.name, filename)
        if spec.fit is FitPolicy.NONE:
            self._write_original(source, source_path, output_path, convert)
        else:
            self._write_resized(spec, source, output_path, fmt, watermark_path)

        set_mode(output_path, self._file_mode)
        return output_path.resolve()

    def _write_resized(
        self,
        spec: TierSpec,
        source: SourceImage,
        output_path: Path,
        fmt: str,
        watermark_path: str | Path | None,
    ) -> None:
        resized = resize_for_tier(source.image, spec)
        if watermark_path and spec.watermark:
            # Cover crops fill the whole box, so the canvas is the resized image itself.
            source_size = source.size if spec.fit is FitPolicy.INSIDE else None
            resized = apply_watermark(resized, watermark_path, spec.max_dimension, source_size)
        save_image(resized, output_path, fmt, self._imaging.quality)
        LOGGER.debug(
            "variant_written",
            extra={"tier": spec.name, "path": str(output_path), "width": resized.width, "height": resized.height},
        )

    def _write_original(self, source: SourceImage, source_path: Path, output_path: Path, convert: bool) -> None:
        if convert:
            save_image(source.image, output_path, "jpeg", ORIGINAL_QUALITY)
        else:
            shutil.copyfile(source_path, output_path)
        LOGGER.debug("variant_written", extra={"tier": "original", "path": str(output_path), "converted": convert})


__all__ = [
    "FitPolicy",
    "ORIGINAL_QUALITY",
    "TierSpec",
    "VariantGenerator",
    "resize_for_tier",
    "save_image",
    "tier_specs",
]
