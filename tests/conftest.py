"""Shared fixtures: isolated settings with storage and SQLite under ``tmp_path``."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image
from pillow_heif import register_heif_opener

from gallery_studio.config import Settings


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    settings = Settings()
    settings.storage.root = str(tmp_path / "storage")
    settings.database.url = f"sqlite:///{tmp_path / 'gallery.db'}"
    settings.queues.backend = "inline"
    return settings


@pytest.fixture()
def make_jpeg(tmp_path: Path):
    """Write a solid-colour JPEG and return its path."""

    def _make(name: str = "photo.jpg", size: tuple[int, int] = (4000, 3000), color: str = "navy") -> Path:
        path = tmp_path / name
        Image.new("RGB", size, color=color).save(path, format="JPEG", quality=90)
        return path

    return _make


@pytest.fixture()
def make_logo(tmp_path: Path):
    """Write an opaque red PNG logo and return its path."""

    def _make(size: tuple[int, int] = (600, 200), name: str = "logo.png") -> Path:
        path = tmp_path / name
        Image.new("RGBA", size, color=(255, 0, 0, 255)).save(path, format="PNG")
        return path

    return _make


@pytest.fixture()
def make_oriented_jpeg(tmp_path: Path):
    """Write a JPEG whose EXIF Orientation tag asks for a 90 degree clockwise turn."""

    def _make(name: str = "rotated.jpg", size: tuple[int, int] = (4000, 3000)) -> Path:
        path = tmp_path / name
        exif = Image.Exif()
        exif[0x0112] = 6
        Image.new("RGB", size, color="maroon").save(path, format="JPEG", quality=90, exif=exif.tobytes())
        return path

    return _make


@pytest.fixture()
def make_heic(tmp_path: Path):
    """Write an HEIC file through pillow-heif's encoder."""

    def _make(name: str = "IMG_0042.heic", size: tuple[int, int] = (1600, 1200)) -> Path:
        register_heif_opener()
        path = tmp_path / name
        Image.new("RGB", size, color="teal").save(path, format="HEIF", quality=90)
        return path

    return _make
