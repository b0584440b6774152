"""Format classification and stored filename rules."""

from __future__ import annotations

import pytest

from gallery_studio.formats import (
    mime_type_for,
    needs_conversion,
    normalize_format_tag,
    output_filename,
    output_format,
)


@pytest.mark.parametrize("tag", ["heic", "HEIF", "raw", "cr2", "nef", "arw", "dng", None, "", "  "])
def test_conversion_formats_and_unknown_tags_are_converted(tag: str | None) -> None:
    """RAW, HEIF and unknown formats are re-encoded as JPEG."""

    assert needs_conversion(tag) is True
    assert output_format(tag) == "jpeg"


@pytest.mark.parametrize(
    ("tag", "expected"),
    [("jpeg", "jpeg"), ("JPEG", "jpeg"), ("png", "png"), ("WEBP", "webp"), ("MPO", "jpeg"), ("tif", "tiff")],
)
def test_other_formats_keep_their_encoding(tag: str, expected: str) -> None:
    """Browser-friendly formats keep their own encoding."""

    assert needs_conversion(tag) is False
    assert output_format(tag) == expected


def test_normalize_format_tag_blank_is_none() -> None:
    """Blank format tags normalise to ``None``."""

    assert normalize_format_tag(None) is None
    assert normalize_format_tag(" ") is None
    assert normalize_format_tag(" Png ") == "png"


def test_output_filename_only_rewrites_extension_on_conversion() -> None:
    """Converted outputs get a ``.jpeg`` extension."""

    assert output_filename("IMG_001.CR2", convert=True) == "IMG_001.jpeg"
    assert output_filename("holiday.photo.heic", convert=True) == "holiday.photo.jpeg"
    assert output_filename("noext", convert=True) == "noext.jpeg"


def test_output_filename_is_unchanged_without_conversion() -> None:
    """Pass-through formats keep the uploaded filename."""

    assert output_filename("DSC_0001.JPG", convert=False) == "DSC_0001.JPG"
    assert output_filename("shot.png", convert=False) == "shot.png"


def test_mime_type_follows_output_format() -> None:
    """The stored MIME type matches the encoded output."""

    assert mime_type_for("jpeg") == "image/jpeg"
    assert mime_type_for("png") == "image/png"
