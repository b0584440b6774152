"""Command-line entrypoint for Gallery Studio administration and processing."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from gallery_studio.config import Settings, load_settings
from gallery_studio.db import get_engine, open_session
from gallery_studio.pipeline import DerivativePipeline
from gallery_studio.repository import create_admin, create_gallery, fail_stale_photos, set_watermark
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "cli"})

app = typer.Typer(add_completion=False, help="Gallery Studio photo processing service.")

_CONFIG_OPTION = typer.Option(None, "--config", help="Path to settings.yaml (defaults to config/settings.yaml).")


def _settings(config: Path | None) -> Settings:
    return load_settings(config)


@app.command("init-db")
def init_db(config: Path | None = _CONFIG_OPTION) -> None:
    """Create the database schema."""

    settings = _settings(config)
    get_engine(settings.database.url)
    settings.storage.root_path.mkdir(parents=True, exist_ok=True)
    LOGGER.info("database_initialized", extra={"database": settings.database.url})
    typer.echo(f"Database ready: {settings.database.url}")


@app.command("create-admin")
def create_admin_command(
    username: str = typer.Argument(..., help="Unique admin username."),
    email: str = typer.Argument(..., help="Unique admin email."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Create an admin account and print its id."""

    settings = _settings(config)
    with open_session(settings.database.url) as session:
        admin = create_admin(session, username=username, email=email)
        typer.echo(admin.id)


@app.command("create-gallery")
def create_gallery_command(
    title: str = typer.Argument(..., help="Gallery title."),
    owner: str | None = typer.Option(None, "--owner", help="Owning admin id; their logo watermarks uploads."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Create a gallery and print its id."""

    settings = _settings(config)
    with open_session(settings.database.url) as session:
        gallery = create_gallery(session, title=title, owner_id=owner)
        typer.echo(gallery.id)


@app.command("set-watermark")
def set_watermark_command(
    admin_id: str = typer.Argument(..., help="Admin account id."),
    logo: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Logo image (PNG with alpha)."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Store a watermark logo for an admin account."""

    settings = _settings(config)
    with open_session(settings.database.url) as session:
        try:
            relative = set_watermark(
                session,
                admin_id,
                logo,
                settings.storage.root_path,
                settings.storage.watermark_dir_name,
            )
        except LookupError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(relative)


@app.command("process")
def process_command(
    gallery_id: str = typer.Argument(..., help="Gallery id the tiers are written under."),
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Source image."),
    filename: str | None = typer.Option(None, "--filename", help="Stored name (defaults to the source name)."),
    watermark: Path | None = typer.Option(None, "--watermark", help="Logo to composite onto resized tiers."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Run the derivative pipeline on one file and print the result as JSON."""

    settings = _settings(config)
    pipeline = DerivativePipeline(settings=settings)
    processed = pipeline.process(gallery_id, source, filename or source.name, watermark)
    typer.echo(json.dumps(processed.as_dict(), indent=2))


@app.command("mark-stale")
def mark_stale_command(
    older_than: float | None = typer.Option(
        None,
        "--older-than",
        help="Seconds a photo may stay in processing (defaults to processing.timeout_seconds).",
    ),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Fail photos left in processing by a crashed worker."""

    settings = _settings(config)
    cutoff = older_than if older_than is not None else settings.processing.timeout_seconds
    with open_session(settings.database.url) as session:
        count = fail_stale_photos(session, cutoff)
    typer.echo(f"Marked {count} stale photo(s) as failed.")


@app.command("serve")
def serve_command(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
    debug: bool = typer.Option(False, "--debug"),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Run the HTTP API with the configured dispatch backend."""

    from gallery_studio.webui import create_app

    settings = _settings(config)
    get_engine(settings.database.url)
    flask_app = create_app(settings)
    flask_app.run(host=host or settings.web.host, port=port or settings.web.port, debug=debug, use_reloader=False)


def main() -> None:
    app()


if __name__ == "__main__":
    main()


__all__ = ["app", "main"]
