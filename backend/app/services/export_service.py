from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass

from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.logging_config import get_logger
from app.models.event import Event
from app.models.prompt import Prompt
from app.models.upload import Upload
from app.schemas.export import ExportItem
from app.services.export_naming import EntryNameRegistry, build_archive_name, build_entry_name
from app.services.origin_client import OriginClient
from app.services.zip_stream import ArchiveError, ZipStreamWriter

FAILED_MANIFEST = "FAILED.txt"
LIMIT_MANIFEST = "WARNING-LIMIT.txt"

logger = get_logger("export")


class ExportError(Exception):
    def __init__(self, code: int, message: str, status_code: int = 400):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class ExportSelection:
    event_id: str
    slug: str | None
    items: list[ExportItem]
    truncated: bool
    limit: int

    @property
    def archive_name(self) -> str:
        return build_archive_name(self.event_id, self.slug)


def _upload_to_item(row: Upload, prompt_text: str | None) -> ExportItem:
    return ExportItem(
        id=row.id,
        origin_url=row.r2_url,
        file_name=row.file_name,
        original_name=row.original_name,
        mime_type=row.mime_type,
        caption=row.caption,
        uploader_name=row.uploader_name,
        created_at=row.created_at,
        prompt_id=row.prompt_id,
        prompt_text=prompt_text,
    )


def load_export_selection(
    db: Session, event_id: str, prompt_id: str | None = None, max_files: int = 2000
) -> ExportSelection:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise ExportError(8001, "Event not found", status_code=404)
    if not event.is_active:
        raise ExportError(8003, "Event is not active", status_code=403)

    query = (
        db.query(Upload, Prompt.text)
        .outerjoin(Prompt, Prompt.id == Upload.prompt_id)
        .filter(Upload.event_id == event.id, Upload.is_approved.is_(True))
    )
    if prompt_id:
        query = query.filter(Upload.prompt_id == prompt_id)
    # One extra row tells us whether the cap cut anything off.
    rows = query.order_by(Upload.created_at.asc(), Upload.id.asc()).limit(max_files + 1).all()
    if not rows:
        raise ExportError(8004, "No approved uploads", status_code=404)

    items = [_upload_to_item(row, prompt_text) for row, prompt_text in rows[:max_files]]
    selection = ExportSelection(
        event_id=event.id,
        slug=event.slug,
        items=items,
        truncated=len(rows) > max_files,
        limit=max_files,
    )
    logger.info(
        "Export admitted for event %s: %d item(s), truncated=%s",
        event.id,
        len(items),
        selection.truncated,
    )
    return selection


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class ExportJob:
    """Runtime state of one download-all request.

    Owned by a single response; the population task is the only writer of
    ``failed`` and of the archive.
    """

    def __init__(
        self,
        selection: ExportSelection,
        origin: OriginClient,
        *,
        concurrency: int = 6,
        fetch_timeout: float = 25.0,
        output_buffer_chunks: int = 32,
    ):
        self.selection = selection
        self.writer = ZipStreamWriter(max_buffered_chunks=output_buffer_chunks)
        self.failed: list[str] = []
        self._origin = origin
        self._concurrency = max(1, concurrency)
        self._fetch_timeout = fetch_timeout
        self._names = EntryNameRegistry(reserved=(FAILED_MANIFEST, LIMIT_MANIFEST))
        self._task: asyncio.Task | None = None

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(
                self.populate(), name=f"export-{self.selection.event_id}"
            )
            self._task.add_done_callback(self._on_done)
        return self._task

    def cancel(self) -> None:
        self.writer.abort("export cancelled")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stream(self) -> AsyncIterator[bytes]:
        self.start()
        completed = False
        try:
            async for chunk in self.writer.iter_bytes():
                yield chunk
            completed = True
        finally:
            if not completed:
                self.cancel()

    async def populate(self) -> None:
        try:
            await self._fetch_all()
            if self.selection.truncated:
                await self.writer.append(LIMIT_MANIFEST, self._limit_manifest())
                logger.info("Export %s: added %s", self.selection.event_id, LIMIT_MANIFEST)
            if self.failed:
                await self.writer.append(FAILED_MANIFEST, self._failed_manifest())
                logger.info(
                    "Export %s: added %s with %d id(s)",
                    self.selection.event_id,
                    FAILED_MANIFEST,
                    len(self.failed),
                )
            await self.writer.finalize()
        except asyncio.CancelledError:
            self.writer.abort("export cancelled")
            raise
        except Exception:
            self.writer.abort("export failed")
            raise

    async def _fetch_all(self) -> None:
        pending = iter(self.selection.items)
        workers = [
            asyncio.create_task(self._worker(pending))
            for _ in range(min(self._concurrency, len(self.selection.items)))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self, pending: Iterator[ExportItem]) -> None:
        # Workers share one iterator, so items start in submission order.
        for item in pending:
            await self._export_item(item)

    async def _export_item(self, item: ExportItem) -> None:
        name = self._names.claim(build_entry_name(item))
        try:
            async with self._origin.open(item.origin_url, self._fetch_timeout) as source:
                await self.writer.append(name, source, date_time=item.created_at)
        except ArchiveError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.failed.append(item.id)
            logger.warning(
                "Export %s: skipped upload %s: %s",
                self.selection.event_id,
                item.id,
                _describe(exc),
            )

    def _limit_manifest(self) -> str:
        return (
            f"WARNING: The number of files exceeds the current limit ({self.selection.limit}). "
            f"The archive contains only the first {len(self.selection.items)} files.\n"
        )

    def _failed_manifest(self) -> str:
        lines = "\n".join(self.failed)
        return f"Some files could not be downloaded and were skipped.\nFailed IDs:\n{lines}\n"

    def _on_done(self, task: asyncio.Task) -> None:
        event_id = self.selection.event_id
        if task.cancelled():
            logger.info("Export %s cancelled by client", event_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Export %s aborted: %s", event_id, _describe(exc), exc_info=exc)
            return
        logger.info(
            "Export %s finished: %d entries, %d failed",
            event_id,
            len(self.selection.items) - len(self.failed),
            len(self.failed),
        )


def build_export_response(job: ExportJob) -> StreamingResponse:
    return StreamingResponse(
        job.stream(),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{job.selection.archive_name}"',
            "Cache-Control": "no-store",
        },
    )
