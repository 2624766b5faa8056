from fastapi import APIRouter

from app.api.v1.export import router as export_router
from app.api.v1.gallery import router as gallery_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(gallery_router, tags=["gallery"])
api_router.include_router(export_router, tags=["export"])
