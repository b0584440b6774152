"""Decoding of uploaded source files into Pillow images."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final

from PIL import Image, ImageOps, UnidentifiedImageError

from gallery_studio.errors import SourceDecodeError
from gallery_studio.formats import normalize_format_tag
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "sources"})

# Extensions routed through LibRaw; Pillow would misread several of them as TIFF.
RAW_EXTENSIONS: Final[frozenset[str]] = frozenset({"raw", "cr2", "nef", "arw", "dng"})


@dataclass(frozen=True)
class SourceImage:
    """A decoded upload plus the format tag reported by its decoder."""

    image: Image.Image
    format: str | None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


@lru_cache(maxsize=1)
def _register_heif_opener() -> None:
    from pillow_heif import register_heif_opener

    register_heif_opener()


def _load_raw(path: Path, extension: str) -> SourceImage:
    import rawpy

    try:
        with rawpy.imread(str(path)) as raw:
            rgb = raw.postprocess(use_camera_wb=True, output_bps=8)
    except (rawpy.LibRawError, OSError) as exc:
        raise SourceDecodeError(f"cannot decode RAW source {path.name!r}: {exc}") from exc
    return SourceImage(image=Image.fromarray(rgb), format=extension)


def load_source(path: Path) -> SourceImage:
    """Decode ``path`` fully into memory and report its format tag.

    EXIF orientation is applied so derived tiers display upright. Decoding
    problems raise :class:`SourceDecodeError`.
    """

    extension = path.suffix.lower().lstrip(".")
    if extension in RAW_EXTENSIONS:
        return _load_raw(path, extension)

    _register_heif_opener()
    try:
        with Image.open(path) as opened:
            fmt = normalize_format_tag(opened.format)
            opened.load()
            image = ImageOps.exif_transpose(opened)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise SourceDecodeError(f"cannot decode source {path.name!r}: {exc}") from exc

    if image is None:  # pragma: no cover - exif_transpose(in_place=False) always returns an image
        raise SourceDecodeError(f"cannot decode source {path.name!r}")

    LOGGER.debug(
        "source_decoded",
        extra={"path": str(path), "format": fmt, "width": image.width, "height": image.height},
    )
    return SourceImage(image=image, format=fmt)


__all__ = ["RAW_EXTENSIONS", "SourceImage", "load_source"]
