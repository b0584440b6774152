"""HTTP API exercised through the Flask test client with inline processing."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from flask.testing import FlaskClient
from PIL import Image

from gallery_studio.config import Settings
from gallery_studio.db import open_session
from gallery_studio.dispatch import InlineDispatcher
from gallery_studio.repository import create_gallery
from gallery_studio.webui import create_app


@pytest.fixture()
def client(settings: Settings) -> FlaskClient:
    app = create_app(settings, InlineDispatcher(settings))
    app.testing = True
    return app.test_client()


@pytest.fixture()
def gallery_id(settings: Settings) -> str:
    with open_session(settings.database.url) as session:
        return create_gallery(session, title="Launch party").id


def _upload(client: FlaskClient, gallery_id: str, *paths: Path, names: list[str] | None = None):
    names = names or [path.name for path in paths]
    files = [(io.BytesIO(path.read_bytes()), name) for path, name in zip(paths, names)]
    return client.post(
        f"/api/galleries/{gallery_id}/photos",
        data={"files": files},
        content_type="multipart/form-data",
    )


def test_health(client: FlaskClient) -> None:
    """The health endpoint reports ok."""

    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_upload_then_list_and_fetch_tiers(client: FlaskClient, gallery_id: str, make_jpeg) -> None:
    """Uploaded photos appear in the listing and each tier can be fetched."""

    response = _upload(client, gallery_id, make_jpeg("a.jpg", (1200, 800)), make_jpeg("b.jpg", (800, 1200)))

    assert response.status_code == 202
    accepted = response.get_json()["photos"]
    assert [item["filename"] for item in accepted] == ["a.jpg", "b.jpg"]

    listing = client.get(f"/api/galleries/{gallery_id}/photos").get_json()["photos"]
    assert [photo["filename"] for photo in listing] == ["a.jpg", "b.jpg"]
    assert listing[0]["processing_status"] == "completed"
    assert listing[0]["urls"]["thumbnail"] == f"/api/photos/{listing[0]['id']}/thumbnail"

    detail = client.get(f"/api/photos/{accepted[0]['id']}").get_json()
    assert (detail["width"], detail["height"]) == (1200, 800)
    assert detail["file_path"] == f"{gallery_id}/original/a.jpg"

    thumb = client.get(f"/api/photos/{accepted[0]['id']}/thumbnail")
    assert thumb.status_code == 200
    assert thumb.mimetype == "image/jpeg"
    with Image.open(io.BytesIO(thumb.data)) as image:
        assert image.size == (400, 400)
    thumb.close()


def test_failed_photos_only_show_in_admin_listing(client: FlaskClient, gallery_id: str, tmp_path: Path) -> None:
    """Failed photos are hidden from the public listing."""

    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"nope")

    assert _upload(client, gallery_id, broken).status_code == 202

    assert client.get(f"/api/galleries/{gallery_id}/photos").get_json()["photos"] == []
    everything = client.get(f"/api/galleries/{gallery_id}/photos/all").get_json()["photos"]
    assert len(everything) == 1
    assert everything[0]["processing_status"] == "failed"
    assert everything[0]["error_message"]
    assert client.get(f"/api/photos/{everything[0]['id']}/web").status_code == 404


def test_upload_validation(client: FlaskClient, gallery_id: str, make_jpeg) -> None:
    """Uploads without files are rejected with 400."""

    assert client.post(f"/api/galleries/{gallery_id}/photos", data={}, content_type="multipart/form-data").status_code == 400
    assert _upload(client, "missing", make_jpeg()).status_code == 404
    assert client.get("/api/galleries/missing/photos").status_code == 404
    assert client.get("/api/photos/missing").status_code == 404


def test_unknown_tier_is_404(client: FlaskClient, gallery_id: str, make_jpeg) -> None:
    """Requests for an unknown tier return 404."""

    photo_id = _upload(client, gallery_id, make_jpeg("a.jpg", (640, 480))).get_json()["photos"][0]["id"]

    assert client.get(f"/api/photos/{photo_id}/huge").status_code == 404


def test_delete_removes_row_and_files(client: FlaskClient, settings: Settings, gallery_id: str, make_jpeg) -> None:
    """Deleting a photo removes its row and tier files."""

    photo_id = _upload(client, gallery_id, make_jpeg("a.jpg", (640, 480))).get_json()["photos"][0]["id"]
    original = settings.storage.root_path / gallery_id / "original" / "a.jpg"
    assert original.exists()

    assert client.delete(f"/api/galleries/other/photos/{photo_id}").status_code == 404
    response = client.delete(f"/api/galleries/{gallery_id}/photos/{photo_id}")

    assert response.status_code == 200
    assert not original.exists()
    assert client.get(f"/api/photos/{photo_id}").status_code == 404
