from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.response import error, ok, trace_id_from_request
from app.services.gallery_service import (
    GalleryError,
    get_gallery,
    list_gallery_prompts,
    list_gallery_uploads,
)

router = APIRouter()


@router.get("/galleries/{event_id}")
def get_gallery_api(event_id: str, request: Request, db: Session = Depends(get_db)):
    trace_id = trace_id_from_request(request)
    try:
        data = get_gallery(db, event_id)
    except GalleryError as exc:
        return error(exc.code, exc.message, trace_id, status_code=exc.status_code)
    return ok(data, trace_id)


@router.get("/galleries/{event_id}/uploads")
def list_gallery_uploads_api(
    event_id: str,
    request: Request,
    prompt_id: str | None = Query(default=None, alias="promptId"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    trace_id = trace_id_from_request(request)
    try:
        data = list_gallery_uploads(
            db, event_id, prompt_id=prompt_id, limit=limit, offset=offset
        )
    except GalleryError as exc:
        return error(exc.code, exc.message, trace_id, status_code=exc.status_code)
    return ok(data, trace_id)


@router.get("/galleries/{event_id}/prompts")
def list_gallery_prompts_api(
    event_id: str,
    request: Request,
    next_only: bool = Query(default=False, alias="next"),
    db: Session = Depends(get_db),
):
    trace_id = trace_id_from_request(request)
    try:
        data = list_gallery_prompts(db, event_id, next_only=next_only)
    except GalleryError as exc:
        return error(exc.code, exc.message, trace_id, status_code=exc.status_code)
    return ok(data, trace_id)
