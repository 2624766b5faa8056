"""Incremental ZIP encoder whose output can be consumed while entries are still being added."""

from __future__ import annotations

import asyncio
import time
import zipfile
from collections.abc import AsyncIterable, AsyncIterator
from datetime import datetime
from enum import Enum

_END = object()
_ABORTED = object()
_EARLIEST_ZIP_TIME = (1980, 1, 1, 0, 0, 0)


class ArchiveState(str, Enum):
    OPEN = "open"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    ABORTED = "aborted"


class ArchiveError(Exception):
    """Base class for failures of the archive itself, as opposed to one entry's source."""


class ArchiveStateError(ArchiveError):
    """Operation not allowed in the writer's current state."""


class ArchiveAbortedError(ArchiveError):
    """The archive was aborted; its output ends abnormally."""


class _ChunkSink:
    """Write-only, unseekable file object collecting what ``zipfile`` emits."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def write(self, data) -> int:
        if data:
            self._parts.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def take(self) -> bytes:
        data = b"".join(self._parts)
        self._parts.clear()
        return data


def _zip_date_time(value: datetime | None) -> tuple[int, int, int, int, int, int]:
    parts = value.timetuple()[:6] if value is not None else time.localtime()[:6]
    return max(tuple(parts), _EARLIEST_ZIP_TIME)


class ZipStreamWriter:
    """Append-only streaming ZIP writer.

    Entries are stored uncompressed and written one at a time; concurrent
    ``append`` calls queue up behind each other. Output chunks go through a
    bounded queue, so a slow consumer of ``iter_bytes`` slows the producers.

    State machine: OPEN -> FINALIZING -> CLOSED, with ``abort`` leading from
    OPEN or FINALIZING to ABORTED.
    """

    def __init__(self, max_buffered_chunks: int = 32):
        self._sink = _ChunkSink()
        self._zip = zipfile.ZipFile(self._sink, mode="w", compression=zipfile.ZIP_STORED)
        # Two slots minimum: abort() must be able to queue its marker next to
        # the chunk of a producer it just woke up.
        self._output: asyncio.Queue = asyncio.Queue(maxsize=max(2, max_buffered_chunks))
        self._entry_lock = asyncio.Lock()
        self._state = ArchiveState.OPEN
        self._abort_reason = ""
        self.entry_names: list[str] = []

    @property
    def state(self) -> ArchiveState:
        return self._state

    def _ensure_open(self) -> None:
        if self._state is ArchiveState.ABORTED:
            raise ArchiveAbortedError(self._abort_reason)
        if self._state is not ArchiveState.OPEN:
            raise ArchiveStateError(f"Archive is {self._state.value}, no more entries accepted")

    async def _flush(self) -> None:
        data = self._sink.take()
        if self._state is ArchiveState.ABORTED:
            raise ArchiveAbortedError(self._abort_reason)
        if data:
            await self._output.put(data)

    def _forget(self, zinfo: zipfile.ZipInfo) -> None:
        # Bytes of a broken entry are already on their way out; keeping it out
        # of the central directory hides it from readers.
        if zinfo in self._zip.filelist:
            self._zip.filelist.remove(zinfo)
        if self._zip.NameToInfo.get(zinfo.filename) is zinfo:
            del self._zip.NameToInfo[zinfo.filename]

    async def append(
        self,
        name: str,
        content: AsyncIterable[bytes] | bytes | str,
        *,
        date_time: datetime | None = None,
    ) -> int:
        """Write one entry and return the number of content bytes stored.

        If ``content`` fails midway the exception propagates to the caller and
        the partial entry is left out of the archive index.
        """
        async with self._entry_lock:
            self._ensure_open()
            zinfo = zipfile.ZipInfo(name, date_time=_zip_date_time(date_time))
            zinfo.compress_type = zipfile.ZIP_STORED
            written = 0
            try:
                with self._zip.open(zinfo, mode="w") as entry:
                    if isinstance(content, (bytes, str)):
                        data = content.encode("utf-8") if isinstance(content, str) else content
                        entry.write(data)
                        written = len(data)
                    else:
                        await self._flush()
                        async for chunk in content:
                            self._ensure_open()
                            entry.write(chunk)
                            written += len(chunk)
                            await self._flush()
            except BaseException:
                self._forget(zinfo)
                raise
            await self._flush()
            self.entry_names.append(zinfo.filename)
            return written

    async def finalize(self) -> None:
        """Write the central directory and end the output. Allowed exactly once."""
        async with self._entry_lock:
            self._ensure_open()
            self._state = ArchiveState.FINALIZING
            self._zip.close()
            await self._flush()
            await self._output.put(_END)
            if self._state is ArchiveState.ABORTED:
                raise ArchiveAbortedError(self._abort_reason)
            self._state = ArchiveState.CLOSED

    def abort(self, reason: str = "archive aborted") -> None:
        if self._state in (ArchiveState.CLOSED, ArchiveState.ABORTED):
            return
        self._state = ArchiveState.ABORTED
        self._abort_reason = reason
        self._sink.take()
        while True:
            try:
                self._output.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._output.put_nowait(_ABORTED)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the archive bytes; raises ``ArchiveAbortedError`` if the archive is aborted."""
        try:
            while True:
                chunk = await self._output.get()
                if chunk is _END:
                    return
                if chunk is _ABORTED:
                    raise ArchiveAbortedError(self._abort_reason)
                yield chunk
        finally:
            if self._state is not ArchiveState.CLOSED:
                self.abort("output consumer went away")
