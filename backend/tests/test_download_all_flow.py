import io
import zipfile

from fastapi.testclient import TestClient


def _archive(resp) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(resp.content))


def test_download_all_streams_zip_with_failed_manifest(client: TestClient, seed):
    event = seed.event(slug="summer-party")
    prompt = seed.prompt(event, "Capture a candid moment of laughter")
    seed.upload(event, index=0, prompt=prompt, uploader_name="Anna")
    broken = seed.upload(event, index=1, fail_status=404)
    seed.upload(event, index=2, uploader_name=None)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/zip"
    assert resp.headers["content-disposition"] == 'attachment; filename="gallery-summer-party.zip"'
    assert resp.headers["cache-control"] == "no-store"

    archive = _archive(resp)
    names = archive.namelist()
    photos = sorted(name for name in names if name.endswith(".jpg"))
    assert len(photos) == 2
    assert "WARNING-LIMIT.txt" not in names
    assert sorted(archive.read(name) for name in photos) == [b"photo-0", b"photo-2"]
    assert any(
        name.startswith("20240601-1830__Capture-a-candid-moment-of-laugh__Anna__")
        for name in photos
    )
    assert any("__prompt__anonymous__" in name for name in photos)

    manifest = archive.read("FAILED.txt").decode()
    assert manifest.split("Failed IDs:\n", 1)[1].split() == [broken.id]


def test_download_all_uses_event_id_without_slug(client: TestClient, seed):
    event = seed.event(slug=None)
    seed.upload(event)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all")

    assert resp.status_code == 200
    assert f'filename="gallery-{event.id}.zip"' in resp.headers["content-disposition"]
    assert "FAILED.txt" not in _archive(resp).namelist()


def test_download_all_unknown_event(client: TestClient):
    resp = client.get("/api/v1/galleries/does-not-exist/download-all")

    assert resp.status_code == 404
    assert resp.json()["error"] == "Event not found"
    assert resp.json()["code"] == 8001


def test_download_all_inactive_event(client: TestClient, seed, fake_origin):
    event = seed.event(is_active=False)
    seed.upload(event)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all")

    assert resp.status_code == 403
    assert resp.headers["content-type"] == "application/json"
    assert resp.json()["error"] == "Event is not active"
    assert fake_origin.requested == []


def test_download_all_filter_without_matches(client: TestClient, seed):
    event = seed.event()
    used = seed.prompt(event, "Dance floor")
    empty = seed.prompt(event, "Sunset", order=1)
    seed.upload(event, prompt=used)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all", params={"promptId": empty.id})

    assert resp.status_code == 404
    assert resp.json()["error"] == "No approved uploads"


def test_download_all_filter_and_approval(client: TestClient, seed):
    event = seed.event()
    dance = seed.prompt(event, "Dance floor")
    sunset = seed.prompt(event, "Sunset", order=1)
    seed.upload(event, index=0, prompt=dance)
    seed.upload(event, index=1, prompt=sunset)
    seed.upload(event, index=2, prompt=dance, approved=False)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all", params={"promptId": dance.id})

    assert resp.status_code == 200
    names = _archive(resp).namelist()
    assert len(names) == 1
    assert "__Dance-floor__" in names[0]


def test_download_all_without_approved_uploads(client: TestClient, seed):
    event = seed.event()
    seed.upload(event, approved=False)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all")

    assert resp.status_code == 404
    assert resp.json()["error"] == "No approved uploads"


def test_download_all_caps_item_count(client: TestClient, seed, fake_origin):
    event = seed.event()
    for index in range(2001):
        seed.upload(event, index=index, commit=False)
    seed.session.commit()

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all")

    assert resp.status_code == 200
    archive = _archive(resp)
    names = archive.namelist()
    assert len([name for name in names if name.endswith(".jpg")]) == 2000
    assert "2000" in archive.read("WARNING-LIMIT.txt").decode()
    assert len(fake_origin.requested) == 2000
    assert b"photo-2000" not in {archive.read(name) for name in names}


def test_download_all_respects_configured_cap(client: TestClient, seed, app):
    app.state.settings.export_max_files = 2
    event = seed.event()
    for index in range(3):
        seed.upload(event, index=index)

    resp = client.get(f"/api/v1/galleries/{event.id}/download-all")

    archive = _archive(resp)
    assert sorted(archive.read(n) for n in archive.namelist() if n.endswith(".jpg")) == [
        b"photo-0",
        b"photo-1",
    ]
    warning = archive.read("WARNING-LIMIT.txt").decode()
    assert "(2)" in warning
    assert "first 2 files" in warning
