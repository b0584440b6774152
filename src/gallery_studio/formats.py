"""Source format classification and output naming."""

from __future__ import annotations

import os
from typing import Final

CONVERTED_FORMAT: Final[str] = "jpeg"

# Camera RAW and HEIC-family encodings are normalised to baseline JPEG.
CONVERSION_FORMATS: Final[frozenset[str]] = frozenset({"heic", "heif", "raw", "cr2", "nef", "arw", "dng"})

# Pillow format names that are the same wire format as a canonical tag.
_FORMAT_ALIASES: Final[dict[str, str]] = {
    "jpg": "jpeg",
    "mpo": "jpeg",
    "tif": "tiff",
}


def normalize_format_tag(format_tag: str | None) -> str | None:
    """Lowercase a decoder format name and fold known aliases; blank tags become ``None``."""

    if format_tag is None:
        return None
    tag = format_tag.strip().lower()
    if not tag:
        return None
    return _FORMAT_ALIASES.get(tag, tag)


def needs_conversion(format_tag: str | None) -> bool:
    """Return True when a source in ``format_tag`` must be re-encoded as JPEG.

    Unknown (absent) formats are normalised as well.
    """

    tag = normalize_format_tag(format_tag)
    if tag is None:
        return True
    return tag in CONVERSION_FORMATS


def output_format(format_tag: str | None) -> str:
    """Return the encoding used for every tier of a source in ``format_tag``."""

    if needs_conversion(format_tag):
        return CONVERTED_FORMAT
    # needs_conversion() already rejected None.
    return normalize_format_tag(format_tag)  # type: ignore[return-value]


def output_filename(filename: str, convert: bool) -> str:
    """Return the stored filename for an upload.

    Without conversion the name is returned unchanged, preserving variants such
    as ``.JPG`` versus ``.jpeg``. With conversion only the extension changes.
    """

    if not convert:
        return filename
    base, _ext = os.path.splitext(filename)
    return f"{base}.{CONVERTED_FORMAT}"


def mime_type_for(fmt: str) -> str:
    return f"image/{fmt}"


__all__ = [
    "CONVERSION_FORMATS",
    "CONVERTED_FORMAT",
    "mime_type_for",
    "needs_conversion",
    "normalize_format_tag",
    "output_filename",
    "output_format",
]
