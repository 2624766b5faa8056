from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.database import get_db
from app.core.deps import app_settings, origin_client
from app.core.response import error, trace_id_from_request
from app.services.export_service import (
    ExportError,
    ExportJob,
    build_export_response,
    load_export_selection,
)
from app.services.origin_client import OriginClient

router = APIRouter()


@router.get("/galleries/{event_id}/download-all")
def download_all_api(
    event_id: str,
    request: Request,
    prompt_id: str | None = Query(default=None, alias="promptId"),
    settings: Settings = Depends(app_settings),
    origin: OriginClient = Depends(origin_client),
    db: Session = Depends(get_db),
):
    trace_id = trace_id_from_request(request)
    try:
        selection = load_export_selection(
            db, event_id=event_id, prompt_id=prompt_id, max_files=settings.export_max_files
        )
    except ExportError as exc:
        return error(exc.code, exc.message, trace_id, status_code=exc.status_code)
    job = ExportJob(
        selection,
        origin,
        concurrency=settings.export_concurrency,
        fetch_timeout=settings.export_fetch_timeout_ms / 1000,
        output_buffer_chunks=settings.export_output_buffer_chunks,
    )
    return build_export_response(job)
