"""SQLAlchemy schema definitions and session management."""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from threading import Lock
from typing import Any

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from gallery_studio.db_helpers import normalize_database_url, sqlite_database_path
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "db"})

_ENGINE_CACHE: dict[str, Engine] = {}
_ENGINE_LOCK = Lock()


def new_id() -> str:
    """Return a fresh opaque identifier for a row."""

    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AdminUser(Base):
    """Photographer account; owns the single watermark logo applied to its galleries."""

    __tablename__ = "admin_users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    watermark_logo_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)


class Gallery(Base):
    """Client gallery; read-only from the processing core's point of view."""

    __tablename__ = "galleries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)


class Photo(Base):
    """Uploaded photo and the metadata of its original tier."""

    __tablename__ = "photos"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    gallery_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    # Relative to the storage root; empty until processing completes.
    file_path: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    width: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    height: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(50), nullable=False, default="application/octet-stream")
    processing_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    upload_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False, default=time.time)

    __table_args__ = (
        Index("idx_photos_gallery_status", "gallery_id", "processing_status"),
        Index("idx_photos_status", "processing_status"),
    )


def _ensure_parent_directory(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.error("db_parent_directory_error", extra={"path": str(path), "error": str(exc)})
        raise


def get_engine(target: str | Path) -> Engine:
    """Return a cached SQLAlchemy engine for the provided target, creating schema if needed."""

    normalized = normalize_database_url(target)
    engine = _ENGINE_CACHE.get(normalized)
    if engine is not None:
        return engine

    with _ENGINE_LOCK:
        engine = _ENGINE_CACHE.get(normalized)
        if engine is not None:
            return engine

        sa_url = make_url(normalized)
        is_sqlite = sa_url.drivername.startswith("sqlite")
        db_path = sqlite_database_path(normalized)
        in_memory = is_sqlite and db_path is None

        engine_kwargs: dict[str, Any] = {}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"timeout": 30.0, "check_same_thread": False}
            if in_memory:
                engine_kwargs["poolclass"] = StaticPool
            else:
                _ensure_parent_directory(db_path)
        else:
            engine_kwargs["pool_pre_ping"] = True

        engine = create_engine(normalized, **engine_kwargs)

        if is_sqlite:

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
                """Configure SQLite for concurrent writers from worker threads."""

                cursor = dbapi_connection.cursor()
                try:
                    if not in_memory:
                        cursor.execute("PRAGMA journal_mode=WAL")
                    cursor.execute("PRAGMA busy_timeout = 30000")
                    cursor.execute("PRAGMA foreign_keys = ON")
                finally:
                    cursor.close()

        try:
            Base.metadata.create_all(engine)
        except OperationalError as exc:
            # Several workers may race to create the schema on first start.
            if "already exists" in str(exc).lower():
                LOGGER.info("db_create_all_table_exists_race", extra={"target": normalized, "error": str(exc)})
            else:
                raise

        _ENGINE_CACHE[normalized] = engine
        return engine


def open_session(target: str | Path) -> Session:
    """Open a SQLAlchemy session bound to the gallery database."""

    return Session(get_engine(target), expire_on_commit=False)


def dispose_engines() -> None:
    """Dispose and forget all cached engines."""

    with _ENGINE_LOCK:
        for engine in _ENGINE_CACHE.values():
            engine.dispose()
        _ENGINE_CACHE.clear()


__all__ = [
    "AdminUser",
    "Base",
    "Gallery",
    "Photo",
    "dispose_engines",
    "get_engine",
    "new_id",
    "open_session",
]
