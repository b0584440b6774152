"""Configuration loader and typed settings for Gallery Studio."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "config"})


@dataclass
class StorageConfig:
    """Filesystem layout for gallery tiers and upload staging."""

    root: str = "storage"
    temp_dir_name: str = "temp"
    watermark_dir_name: str = "watermarks"
    file_mode: int = 0o644
    dir_mode: int = 0o755

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser().resolve()

    @property
    def temp_path(self) -> Path:
        return self.root_path / self.temp_dir_name


@dataclass
class ImagingConfig:
    """Bounding sizes (pixels) and encode quality for derived tiers."""

    thumbnail_size: int = 400
    preview_size: int = 1920
    web_size: int = 2048
    quality: int = 85


@dataclass
class DatabaseConfig:
    """Relational store holding galleries, photos, and admin accounts."""

    url: str = "sqlite:///data/gallery_studio.db"


@dataclass
class QueueConfig:
    """Dispatch backend and worker pool sizing."""

    backend: str = "thread"
    max_workers: int = 2
    max_pending: int = 32
    submit_timeout: float = 30.0
    broker_url: str = "redis://localhost:6379/0"
    result_backend: str = "redis://localhost:6379/1"
    queue_name: str = "photo_processing"


@dataclass
class ProcessingConfig:
    """Per-photo processing limits."""

    timeout_seconds: float = 300.0


@dataclass
class WebConfig:
    """HTTP surface options."""

    host: str = "127.0.0.1"
    port: int = 3000
    max_upload_bytes: int = 524_288_000


@dataclass
class Settings:
    """Top-level application settings."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    imaging: ImagingConfig = field(default_factory=ImagingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    queues: QueueConfig = field(default_factory=QueueConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    web: WebConfig = field(default_factory=WebConfig)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover
        return module_path.parent


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("GALLERY_STUDIO_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    cwd_candidate = (Path.cwd() / "config" / "settings.yaml").resolve()
    if cwd_candidate.exists():
        return cwd_candidate
    return (_project_root() / "config" / "settings.yaml").resolve()


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _apply_section(target: object, raw: dict[str, Any]) -> None:
    """Copy recognised keys from ``raw`` onto a config dataclass, type-checked against defaults."""

    for key, value in raw.items():
        if not hasattr(target, key):
            LOGGER.warning("settings_unknown_key", extra={"section": type(target).__name__, "key": key})
            continue
        current = getattr(target, key)
        if isinstance(current, bool):
            if isinstance(value, bool):
                setattr(target, key, value)
        elif isinstance(current, int):
            if _is_int(value):
                setattr(target, key, value)
        elif isinstance(current, float):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(target, key, float(value))
        elif isinstance(current, str):
            if isinstance(value, str):
                setattr(target, key, value)


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip(), 10)
    except ValueError:
        LOGGER.warning("settings_env_not_integer", extra={"variable": name, "value": raw})
        return None


def _apply_env_overrides(settings: Settings) -> None:
    """Apply deployment environment variables over file values."""

    storage_path = os.getenv("STORAGE_PATH")
    if storage_path:
        settings.storage.root = storage_path

    database_url = os.getenv("DATABASE_URL")
    if database_url:
        settings.database.url = database_url

    for env_name, attr in (
        ("THUMBNAIL_SIZE", "thumbnail_size"),
        ("PREVIEW_SIZE", "preview_size"),
        ("WEB_SIZE", "web_size"),
        ("IMAGE_QUALITY", "quality"),
    ):
        value = _env_int(env_name)
        if value is not None:
            setattr(settings.imaging, attr, value)

    max_upload = _env_int("MAX_UPLOAD_SIZE")
    if max_upload is not None:
        settings.web.max_upload_bytes = max_upload


def validate_settings(settings: Settings) -> Settings:
    """Reject values the imaging pipeline cannot honour."""

    imaging = settings.imaging
    for name in ("thumbnail_size", "preview_size", "web_size"):
        if getattr(imaging, name) <= 0:
            raise ValueError(f"imaging.{name} must be a positive pixel size, got {getattr(imaging, name)!r}")
    if not 1 <= imaging.quality <= 100:
        raise ValueError(f"imaging.quality must be within 1-100, got {imaging.quality!r}")
    if settings.queues.backend not in {"thread", "celery", "inline"}:
        raise ValueError(f"Unsupported queue backend: {settings.queues.backend!r}")
    if settings.queues.max_workers < 1 or settings.queues.max_pending < 1:
        raise ValueError("queues.max_workers and queues.max_pending must be at least 1")
    return settings


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load application settings from YAML, then apply environment overrides.

    A missing or malformed file yields default values; out-of-range values
    raise :class:`ValueError` from :func:`validate_settings`.
    """

    path = _resolve_settings_path(settings_path)
    settings = Settings()

    raw: Any = {}
    if path.exists() and path.is_file():
        with path.open("r", encoding="utf-8") as fp:
            try:
                raw = yaml.safe_load(fp) or {}
            except yaml.YAMLError as exc:
                LOGGER.error("settings_parse_error", extra={"path": str(path), "error": str(exc)})
                raw = {}

    if isinstance(raw, dict):
        _apply_section(settings.storage, _as_dict(raw.get("storage")))
        _apply_section(settings.imaging, _as_dict(raw.get("imaging")))
        _apply_section(settings.database, _as_dict(raw.get("database")))
        _apply_section(settings.queues, _as_dict(raw.get("queues")))
        _apply_section(settings.processing, _as_dict(raw.get("processing")))
        _apply_section(settings.web, _as_dict(raw.get("web")))

    _apply_env_overrides(settings)
    return validate_settings(settings)


__all__ = [
    "DatabaseConfig",
    "ImagingConfig",
    "ProcessingConfig",
    "QueueConfig",
    "Settings",
    "StorageConfig",
    "WebConfig",
    "load_settings",
    "validate_settings",
]
