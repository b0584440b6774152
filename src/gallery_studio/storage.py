"""On-disk layout of gallery tiers: ``{root}/{gallery_id}/{tier}/{filename}``."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Final

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "storage"})

TIERS: Final[tuple[str, ...]] = ("thumbnail", "preview", "web", "original")
DEFAULT_FILE_MODE: Final[int] = 0o644
DEFAULT_DIR_MODE: Final[int] = 0o755


def gallery_root(storage_root: Path, gallery_id: str) -> Path:
    return storage_root / gallery_id


def tier_path(storage_root: Path, gallery_id: str, tier: str, filename: str) -> Path:
    """Return where ``tier`` of ``filename`` lives for a gallery."""

    if tier not in TIERS:
        raise ValueError(f"Unknown tier: {tier!r}")
    name = Path(filename).name
    if name != filename or name in {"", ".", ".."}:
        raise ValueError(f"Invalid stored filename: {filename!r}")
    return gallery_root(storage_root, gallery_id) / tier / name


def staging_path(storage_root: Path, gallery_id: str, tier: str, filename: str, token: str) -> Path:
    """Private sibling of the tier file that one run writes before publishing."""

    final = tier_path(storage_root, gallery_id, tier, filename)
    return final.with_name(f".{token}-{final.name}.part")


def publish_staged(staged: dict[Path, Path]) -> None:
    """Move each staged file onto its final path; ``staged`` maps staging -> final."""

    for staging, final in staged.items():
        os.replace(staging, final)


def relative_to_root(storage_root: Path, path: Path) -> str:
    """Render ``path`` relative to the storage root using forward slashes."""

    try:
        return path.resolve().relative_to(storage_root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def set_mode(path: Path, mode: int) -> bool:
    """Best-effort chmod; failures are logged and reported as ``False``."""

    try:
        os.chmod(path, mode)
    except OSError as exc:
        LOGGER.warning("chmod_failed", extra={"path": str(path), "mode": oct(mode), "error": str(exc)})
        return False
    return True


def ensure_gallery_directories(
    storage_root: Path, gallery_id: str, dir_mode: int = DEFAULT_DIR_MODE
) -> dict[str, Path]:
    """Create every tier directory of a gallery; safe under concurrent callers."""

    directories: dict[str, Path] = {}
    for tier in TIERS:
        directory = gallery_root(storage_root, gallery_id) / tier
        directory.mkdir(parents=True, exist_ok=True)
        set_mode(directory, dir_mode)
        directories[tier] = directory
    set_mode(gallery_root(storage_root, gallery_id), dir_mode)
    return directories


def remove_file(path: Path) -> bool:
    """Unlink ``path`` if present; returns whether a file was removed."""

    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        LOGGER.warning("file_remove_failed", extra={"path": str(path), "error": str(exc)})
        return False
    return True


def delete_photo_files(storage_root: Path, gallery_id: str, filename: str) -> int:
    """Remove all four tier files of a photo; returns how many existed."""

    removed = 0
    for tier in TIERS:
        if remove_file(tier_path(storage_root, gallery_id, tier, filename)):
            removed += 1
    LOGGER.info(
        "photo_files_deleted",
        extra={"gallery_id": gallery_id, "stored_filename": filename, "removed": removed},
    )
    return removed


def delete_gallery_directory(storage_root: Path, gallery_id: str) -> None:
    """Remove a gallery's whole directory tree."""

    directory = gallery_root(storage_root, gallery_id)
    shutil.rmtree(directory, ignore_errors=True)
    LOGGER.info("gallery_directory_deleted", extra={"gallery_id": gallery_id, "path": str(directory)})


__all__ = [
    "DEFAULT_DIR_MODE",
    "DEFAULT_FILE_MODE",
    "TIERS",
    "delete_gallery_directory",
    "delete_photo_files",
    "ensure_gallery_directories",
    "gallery_root",
    "publish_staged",
    "relative_to_root",
    "remove_file",
    "set_mode",
    "staging_path",
    "tier_path",
]
