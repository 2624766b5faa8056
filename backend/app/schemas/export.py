from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ExportItem(BaseModel):
    """One approved upload as the archive export sees it."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    origin_url: str = Field(min_length=1)
    file_name: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    caption: str | None = None
    uploader_name: str | None = None
    created_at: datetime
    prompt_id: str | None = None
    prompt_text: str | None = None
