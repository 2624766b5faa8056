from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.models.event import Event
from app.models.prompt import Prompt
from app.models.upload import Upload
from app.services.origin_client import HttpxOriginClient

ORIGIN = "https://cdn.test"


class FakeOrigin:
    """Scriptable object store behind an ``httpx.MockTransport``."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.statuses: dict[str, int] = {}
        self.delay_seconds = 0.0
        self.delays: dict[str, float] = {}
        self.requested: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def put(self, path: str, body: bytes) -> str:
        url = f"{ORIGIN}/{path}"
        self.objects[url] = body
        return url

    def fail(self, path: str, status_code: int = 404) -> str:
        url = f"{ORIGIN}/{path}"
        self.statuses[url] = status_code
        return url

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(url, self.delay_seconds)
            if delay:
                await asyncio.sleep(delay)
        finally:
            self.in_flight -= 1
        if url in self.statuses:
            return httpx.Response(self.statuses[url], text="missing")
        if url not in self.objects:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, content=self.objects[url])

    def client(self, chunk_size: int = 64 * 1024) -> HttpxOriginClient:
        transport = httpx.MockTransport(self.handler)
        return HttpxOriginClient(httpx.AsyncClient(transport=transport), chunk_size=chunk_size)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_origin() -> FakeOrigin:
    return FakeOrigin()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    db_file = tmp_path / "photo_prompt_test.sqlite3"
    return Settings(db_url=f"sqlite:///{db_file.as_posix()}", log_level="WARNING")


@pytest.fixture
def app(test_settings, fake_origin):
    application = create_app(test_settings)
    application.state.origin_client = fake_origin.client()
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(client, app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


class GallerySeeder:
    def __init__(self, session, origin: FakeOrigin):
        self.session = session
        self.origin = origin
        self.base_time = datetime(2024, 6, 1, 18, 30)

    def event(self, slug: str | None = "summer-party", is_active: bool = True) -> Event:
        row = Event(id=str(uuid4()), slug=slug, name="Summer Party", is_active=is_active)
        self.session.add(row)
        self.session.commit()
        return row

    def prompt(self, event: Event, text: str, order: int = 0, max_uploads: int | None = None) -> Prompt:
        row = Prompt(
            id=str(uuid4()), event_id=event.id, text=text, order=order, max_uploads=max_uploads
        )
        self.session.add(row)
        self.session.commit()
        return row

    def upload(
        self,
        event: Event,
        *,
        index: int = 0,
        prompt: Prompt | None = None,
        uploader_name: str | None = "Guest",
        body: bytes | None = None,
        fail_status: int | None = None,
        approved: bool = True,
        commit: bool = True,
    ) -> Upload:
        upload_id = str(uuid4())
        path = f"events/{event.id}/{upload_id}.jpg"
        if fail_status is not None:
            url = self.origin.fail(path, fail_status)
        else:
            url = self.origin.put(path, body if body is not None else f"photo-{index}".encode())
        row = Upload(
            id=upload_id,
            event_id=event.id,
            prompt_id=prompt.id if prompt else None,
            r2_url=url,
            file_name=f"{upload_id}.jpg",
            original_name="IMG_0001.JPG",
            mime_type="image/jpeg",
            uploader_name=uploader_name,
            is_approved=approved,
            created_at=self.base_time + timedelta(minutes=index),
        )
        self.session.add(row)
        if commit:
            self.session.commit()
        return row


@pytest.fixture
def seed(db_session, fake_origin) -> GallerySeeder:
    return GallerySeeder(db_session, fake_origin)
