"""Pydantic schemas."""

from app.schemas.export import ExportItem

__all__ = [
    "ExportItem",
]
