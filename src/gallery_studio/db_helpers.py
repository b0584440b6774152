"""Helpers for database URL handling."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine.url import make_url


def normalize_database_url(target: str | Path) -> str:
    """Normalize database URL or path inputs to absolute URLs.

    Bare filesystem paths become SQLite URLs, relative SQLite databases are
    anchored at the current working directory, and other URLs are returned
    unchanged apart from SQLAlchemy's canonical rendering.
    """

    if isinstance(target, Path):
        return f"sqlite:///{target.resolve()}"

    raw = str(target).strip()
    if not raw:
        raise ValueError("database target cannot be empty")

    if "://" not in raw:
        return f"sqlite:///{Path(raw).resolve()}"

    url = make_url(raw)
    if not url.drivername.startswith("sqlite"):
        return url.render_as_string(hide_password=False)

    database = url.database or ""
    if database in {":memory:", ""}:
        return raw

    db_path = Path(database)
    if not db_path.is_absolute():
        db_path = (Path.cwd() / db_path).resolve()
    return url.set(database=str(db_path)).render_as_string(hide_password=False)


def sqlite_database_path(target: str | Path) -> Path | None:
    """Return the on-disk path of a SQLite target, or ``None`` for other dialects and in-memory DBs."""

    url = make_url(normalize_database_url(target))
    if not url.drivername.startswith("sqlite"):
        return None
    database = url.database or ""
    if database in {":memory:", ""}:
        return None
    return Path(database)


__all__ = ["normalize_database_url", "sqlite_database_path"]
