"""Storage layout helpers."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from gallery_studio.storage import (
    TIERS,
    delete_gallery_directory,
    delete_photo_files,
    ensure_gallery_directories,
    relative_to_root,
    tier_path,
)


def test_tier_path_layout(tmp_path: Path) -> None:
    """Tier files live under ``{root}/{gallery}/{tier}/{filename}``."""

    assert tier_path(tmp_path, "g1", "web", "a.jpg") == tmp_path / "g1" / "web" / "a.jpg"


@pytest.mark.parametrize(("tier", "filename"), [("large", "a.jpg"), ("web", "../a.jpg"), ("web", "..")])
def test_tier_path_rejects_unknown_tiers_and_traversal(tmp_path: Path, tier: str, filename: str) -> None:
    """Unknown tiers and path components in filenames are rejected."""

    with pytest.raises(ValueError):
        tier_path(tmp_path, "g1", tier, filename)


def test_ensure_gallery_directories_is_idempotent(tmp_path: Path) -> None:
    """Creating tier directories twice is harmless."""

    first = ensure_gallery_directories(tmp_path, "g1", 0o755)
    second = ensure_gallery_directories(tmp_path, "g1", 0o755)

    assert first == second
    assert sorted(first) == sorted(TIERS)
    for directory in first.values():
        assert directory.is_dir()
        assert stat.S_IMODE(directory.stat().st_mode) == 0o755


def test_delete_photo_files_removes_every_tier(tmp_path: Path) -> None:
    """All four tier files of a photo are removed."""

    ensure_gallery_directories(tmp_path, "g1")
    for tier in TIERS:
        tier_path(tmp_path, "g1", tier, "a.jpg").write_bytes(b"x")

    assert delete_photo_files(tmp_path, "g1", "a.jpg") == 4
    assert delete_photo_files(tmp_path, "g1", "a.jpg") == 0


def test_delete_gallery_directory(tmp_path: Path) -> None:
    """The whole gallery directory tree is removed."""

    ensure_gallery_directories(tmp_path, "g1")

    delete_gallery_directory(tmp_path, "g1")
    delete_gallery_directory(tmp_path, "g1")

    assert not (tmp_path / "g1").exists()


def test_relative_to_root_uses_forward_slashes(tmp_path: Path) -> None:
    """Stored paths are relative to the root with forward slashes."""

    assert relative_to_root(tmp_path, tmp_path / "g1" / "original" / "a.jpg") == "g1/original/a.jpg"
