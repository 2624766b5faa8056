from fastapi import Request

from app.core.config import Settings
from app.services.origin_client import OriginClient


def app_settings(request: Request) -> Settings:
    return request.app.state.settings


def origin_client(request: Request) -> OriginClient:
    return request.app.state.origin_client
