from __future__ import annotations

import re
import unicodedata
from datetime import datetime

from app.schemas.export import ExportItem

ENTRY_NAME_MAX_LEN = 140
PROMPT_PART_MAX_LEN = 32
UPLOADER_PART_MAX_LEN = 32
ID_PART_MAX_LEN = 24
DEFAULT_EXTENSION = "jpg"
PROMPT_FALLBACK = "prompt"
UPLOADER_FALLBACK = "anonymous"

_UNSAFE_CHARS = re.compile(r"[^\w\-\s]", re.ASCII)
_WHITESPACE = re.compile(r"\s+", re.ASCII)
_HYPHENS = re.compile(r"-+")
_EXTENSION = re.compile(r"^[a-z0-9]{1,5}$")

_MIME_EXTENSIONS: tuple[tuple[str, str], ...] = (
    ("jpeg", "jpg"),
    ("png", "png"),
    ("webp", "webp"),
    ("heic", "heic"),
    ("heif", "heif"),
)


def sanitize_part(value: str, max_len: int = 40) -> str:
    """Reduce free text to ``[A-Za-z0-9_-]``, at most ``max_len`` characters, never empty."""
    cleaned = unicodedata.normalize("NFKD", value)
    cleaned = _UNSAFE_CHARS.sub("", cleaned)
    cleaned = _WHITESPACE.sub("-", cleaned)
    cleaned = _HYPHENS.sub("-", cleaned)
    cleaned = cleaned.strip("-")
    cleaned = cleaned[:max_len]
    return cleaned or "x"


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y%m%d-%H%M")


def build_archive_name(event_id: str, slug: str | None = None) -> str:
    return f"gallery-{slug or event_id}.zip"


def _extension_from_name(name: str | None) -> str | None:
    if not name or "." not in name:
        return None
    candidate = name.rsplit(".", 1)[1].lower()
    if _EXTENSION.match(candidate):
        return candidate
    return None


def infer_extension(
    file_name: str | None, original_name: str | None, mime_type: str | None
) -> str:
    from_name = _extension_from_name(file_name or original_name)
    if from_name:
        return from_name
    if mime_type:
        lowered = mime_type.lower()
        for marker, extension in _MIME_EXTENSIONS:
            if marker in lowered:
                return extension
    return DEFAULT_EXTENSION


def build_entry_name(item: ExportItem) -> str:
    timestamp = format_timestamp(item.created_at)
    prompt_part = sanitize_part(item.prompt_text or PROMPT_FALLBACK, PROMPT_PART_MAX_LEN)
    uploader_part = sanitize_part(item.uploader_name or UPLOADER_FALLBACK, UPLOADER_PART_MAX_LEN)
    id_part = sanitize_part(item.id, ID_PART_MAX_LEN)
    extension = infer_extension(item.file_name, item.original_name, item.mime_type)

    raw = f"{timestamp}__{prompt_part}__{uploader_part}__{id_part}.{extension}"
    return raw[:ENTRY_NAME_MAX_LEN]


class EntryNameRegistry:
    """Hands out entry names that are unique within one archive.

    A clashing name gets ``-2``, ``-3``, ... inserted before its extension.
    """

    def __init__(self, reserved: tuple[str, ...] = ()):
        self._taken: set[str] = set(reserved)

    def __contains__(self, name: str) -> bool:
        return name in self._taken

    def claim(self, name: str) -> str:
        if name not in self._taken:
            self._taken.add(name)
            return name
        stem, dot, extension = name.rpartition(".")
        if not dot:
            stem, extension = name, ""
        counter = 2
        while True:
            suffix = f"-{counter}"
            tail = f"{suffix}.{extension}" if extension else suffix
            candidate = stem[: ENTRY_NAME_MAX_LEN - len(tail)] + tail
            if candidate not in self._taken:
                self._taken.add(candidate)
                return candidate
            counter += 1
