"""Proportional bottom-centre watermark compositing."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from PIL import Image
from PIL.Image import Resampling

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "watermark"})

WATERMARK_WIDTH_RATIO: Final[float] = 0.15
WATERMARK_MIN_WIDTH: Final[int] = 50
BOTTOM_MARGIN_RATIO: Final[float] = 0.03


@dataclass(frozen=True)
class WatermarkPlacement:
    """Where a resized watermark lands on a target canvas."""

    target_width: int
    target_height: int
    watermark_width: int
    watermark_height: int
    left: int
    top: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def fit_inside_dimensions(source_size: tuple[int, int], max_dimension: int) -> tuple[int, int]:
    """Size that an inside-fit, no-enlargement resize of ``source_size`` produces.

    Zero or missing source dimensions are replaced by ``max_dimension`` so the
    scale computation never divides by zero.
    """

    source_width = source_size[0] or max_dimension
    source_height = source_size[1] or max_dimension
    scale = min(max_dimension / source_width, max_dimension / source_height, 1)
    return _round_half_up(source_width * scale), _round_half_up(source_height * scale)


def watermark_target_width(target_width: int) -> int:
    """15% of the canvas width, never narrower than 50px."""

    return max(math.floor(target_width * WATERMARK_WIDTH_RATIO), WATERMARK_MIN_WIDTH)


def compute_placement(target_size: tuple[int, int], watermark_size: tuple[int, int]) -> WatermarkPlacement:
    """Bottom-centre placement with a 3% bottom margin."""

    target_width, target_height = target_size
    watermark_width, watermark_height = watermark_size
    left = math.floor((target_width - watermark_width) / 2)
    top = target_height - watermark_height - math.floor(target_height * BOTTOM_MARGIN_RATIO)
    return WatermarkPlacement(
        target_width=target_width,
        target_height=target_height,
        watermark_width=watermark_width,
        watermark_height=watermark_height,
        left=left,
        top=top,
    )


def resize_watermark(watermark: Image.Image, width: int) -> Image.Image:
    """Scale ``watermark`` to ``width`` keeping aspect ratio; logos narrower than ``width`` stay as-is."""

    logo = watermark.convert("RGBA")
    if logo.width <= width:
        return logo
    height = max(1, round(logo.height * width / logo.width))
    return logo.resize((width, height), resample=Resampling.LANCZOS)


def _composite(base: Image.Image, logo: Image.Image, left: int, top: int) -> Image.Image:
    has_alpha = base.mode in ("RGBA", "LA") or (base.mode == "P" and "transparency" in base.info)
    canvas = base.convert("RGBA") if has_alpha else base.convert("RGB")
    canvas.paste(logo, (left, top), logo)
    return canvas


def apply_watermark(
    base: Image.Image,
    watermark_path: str | Path,
    target_max_dimension: int | None,
    source_size: tuple[int, int] | None = None,
) -> Image.Image:
    """Composite the logo at ``watermark_path`` onto ``base`` and return the new image.

    ``base`` has already been resized for its tier. The intended canvas is
    recomputed from ``source_size`` (defaulting to the base's own size) as an
    inside-fit of ``target_max_dimension``. Any failure is logged and the
    unmodified ``base`` is returned.
    """

    path = Path(watermark_path)
    try:
        max_dimension = target_max_dimension or max(base.width, base.height)
        size = source_size or base.size
        target_size = fit_inside_dimensions(size, max_dimension)

        with Image.open(path) as raw_logo:
            logo = resize_watermark(raw_logo, watermark_target_width(target_size[0]))

        placement = compute_placement(target_size, logo.size)
        composited = _composite(base, logo, placement.left, placement.top)
    except Exception as exc:
        LOGGER.warning(
            "watermark_apply_failed",
            extra={"watermark_path": str(path), "target_max_dimension": target_max_dimension, "error": str(exc)},
        )
        return base

    LOGGER.debug(
        "watermark_applied",
        extra={
            "watermark_path": str(path),
            "target_width": placement.target_width,
            "target_height": placement.target_height,
            "watermark_width": placement.watermark_width,
            "left": placement.left,
            "top": placement.top,
        },
    )
    return composited


__all__ = [
    "BOTTOM_MARGIN_RATIO",
    "WATERMARK_MIN_WIDTH",
    "WATERMARK_WIDTH_RATIO",
    "WatermarkPlacement",
    "apply_watermark",
    "compute_placement",
    "fit_inside_dimensions",
    "resize_watermark",
    "watermark_target_width",
]
