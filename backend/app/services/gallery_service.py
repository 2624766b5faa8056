from __future__ import annotations

import random

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.event import Event
from app.models.prompt import Prompt
from app.models.upload import Upload


class GalleryError(Exception):
    def __init__(self, code: int, message: str, status_code: int = 400):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _get_event(db: Session, event_id: str) -> Event:
    row = db.query(Event).filter(Event.id == event_id).first()
    if not row:
        raise GalleryError(9001, "Event not found", status_code=404)
    return row


def event_to_dict(row: Event) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "slug": row.slug,
        "description": row.description,
        "is_active": row.is_active,
        "created_at": row.created_at.isoformat(),
    }


def get_gallery(db: Session, event_id: str) -> dict:
    return event_to_dict(_get_event(db, event_id))


def list_gallery_uploads(
    db: Session,
    event_id: str,
    prompt_id: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    event = _get_event(db, event_id)
    filters = [Upload.event_id == event.id, Upload.is_approved.is_(True)]
    if prompt_id:
        filters.append(Upload.prompt_id == prompt_id)

    rows = (
        db.query(Upload, Prompt)
        .outerjoin(Prompt, Prompt.id == Upload.prompt_id)
        .filter(*filters)
        .order_by(Upload.created_at.desc(), Upload.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    total = db.query(func.count(Upload.id)).filter(*filters).scalar() or 0
    return {
        "items": [
            {
                "id": upload.id,
                "origin_url": upload.r2_url,
                "caption": upload.caption,
                "uploader_name": upload.uploader_name,
                "created_at": upload.created_at.isoformat(),
                "prompt": {"id": prompt.id, "text": prompt.text} if prompt else None,
            }
            for upload, prompt in rows
        ],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": total > offset + limit,
        },
    }


def list_gallery_prompts(db: Session, event_id: str, next_only: bool = False) -> dict:
    event = _get_event(db, event_id)
    if not event.is_active:
        raise GalleryError(9003, "Event is not active", status_code=403)

    upload_count = func.count(Upload.id)
    rows = (
        db.query(Prompt, upload_count)
        .outerjoin(Upload, Upload.prompt_id == Prompt.id)
        .filter(Prompt.event_id == event.id, Prompt.is_active.is_(True))
        .group_by(Prompt.id)
        .order_by(Prompt.order.asc())
        .all()
    )
    prompts = [
        {
            "id": prompt.id,
            "text": prompt.text,
            "order": prompt.order,
            "max_uploads": prompt.max_uploads,
            "upload_count": count,
        }
        for prompt, count in rows
    ]
    if not next_only:
        return {"items": prompts}

    available = [
        p for p in prompts if not p["max_uploads"] or p["upload_count"] < p["max_uploads"]
    ]
    return {"prompt": random.choice(available) if available else None}
